import logging
import uuid
from typing import Optional, Union

from fhirhook.errors import ActivationEndpointUnreachable, DeliveryError, SubscriptionNotFound
from fhirhook.models.snapshot import ChannelType, SubscriptionSnapshot
from fhirhook.notifications.bundle import build_probe_bundle
from fhirhook.notifications.channels import RestHookChannel
from fhirhook.notifications.outcomes import activated, deactivated

logger = logging.getLogger(__name__)


class SubscriptionLifecycle:
    """
    Activation and deactivation of subscriptions.

    requested --activate--> active --(5 failures)--> error
    active --deactivate--> off
    error | off --activate--> active
    """

    def __init__(self, repository, rest_hook: Optional[RestHookChannel] = None):
        self.repository = repository
        self.rest_hook = rest_hook or RestHookChannel()

    async def _load(self, subscription_id: Union[str, uuid.UUID]) -> SubscriptionSnapshot:
        sub = await self.repository.get(subscription_id)
        if sub is None:
            raise SubscriptionNotFound(subscription_id)
        return sub

    async def test_endpoint(self, sub: SubscriptionSnapshot) -> None:
        """POST an empty history Bundle to the rest-hook endpoint."""
        try:
            await self.rest_hook.deliver(sub, build_probe_bundle())
        except DeliveryError as exc:
            logger.warning(f"[Lifecycle] Endpoint test failed for {sub.id}: {exc}")
            raise ActivationEndpointUnreachable(sub.id, str(exc)) from exc

    async def activate(self, subscription_id: Union[str, uuid.UUID]) -> SubscriptionSnapshot:
        sub = await self._load(subscription_id)

        if sub.channel_type == ChannelType.REST_HOOK.value:
            await self.test_endpoint(sub)

        transition = activated(sub)
        await self.repository.apply(transition)
        logger.info(f"[Lifecycle] Subscription {sub.id} activated (was {sub.status})")
        return transition.subscription

    async def deactivate(self, subscription_id: Union[str, uuid.UUID]) -> SubscriptionSnapshot:
        sub = await self._load(subscription_id)
        transition = deactivated(sub)
        await self.repository.apply(transition)
        logger.info(f"[Lifecycle] Subscription {sub.id} deactivated")
        return transition.subscription
