class FhirHookError(Exception):
    """Base class for errors raised by the notification engine."""


class DeliveryError(FhirHookError):
    """A channel could not deliver a notification."""


class UnsupportedChannelKind(FhirHookError):
    def __init__(self, channel_type):
        super().__init__(f"Unsupported channel type: {channel_type}")
        self.channel_type = channel_type


class ActivationEndpointUnreachable(FhirHookError):
    def __init__(self, subscription_id, reason):
        super().__init__(
            f"Endpoint test for subscription {subscription_id} failed: {reason}"
        )
        self.subscription_id = subscription_id
        self.reason = reason


class SubscriptionNotFound(FhirHookError):
    def __init__(self, subscription_id):
        super().__init__(f"Subscription {subscription_id} not found")
        self.subscription_id = subscription_id


class InvalidCriteria(FhirHookError):
    """Subscription criteria rejected at registration time."""
