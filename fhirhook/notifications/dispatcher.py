import asyncio
import logging
from typing import Dict, List, Optional, Sequence

from fhirhook.errors import UnsupportedChannelKind
from fhirhook.models.snapshot import ChannelType, ResourceChangeEvent, SubscriptionSnapshot
from fhirhook.notifications.bundle import build_notification_bundle
from fhirhook.notifications.channels import NotificationChannel
from fhirhook.notifications.outcomes import DeliveryOutcomeTracker

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """
    Sends notifications for matched subscriptions.

    Delivery failures never leave send(): they are recorded on the subscription
    through the outcome tracker. Unsupported channel kinds are logged and skipped
    without touching the subscription.
    """

    def __init__(
        self,
        channels: Dict[ChannelType, NotificationChannel],
        tracker: DeliveryOutcomeTracker,
    ):
        self.channels = channels
        self.tracker = tracker

    def channel_for(self, subscription: SubscriptionSnapshot) -> NotificationChannel:
        try:
            kind = ChannelType(subscription.channel_type)
        except ValueError:
            raise UnsupportedChannelKind(subscription.channel_type) from None
        channel = self.channels.get(kind)
        if channel is None:
            raise UnsupportedChannelKind(subscription.channel_type)
        return channel

    async def send(
        self, subscription: SubscriptionSnapshot, event: ResourceChangeEvent
    ) -> Optional[SubscriptionSnapshot]:
        """Deliver one notification; returns the updated snapshot, None when skipped."""
        try:
            channel = self.channel_for(subscription)
        except UnsupportedChannelKind as exc:
            logger.warning(f"[Dispatch] {exc}; skipping subscription {subscription.id}")
            return None

        bundle = build_notification_bundle(subscription, event)
        try:
            await channel.deliver(subscription, bundle)
        except Exception as exc:
            return await self.tracker.handle_failure(subscription, exc)

        return await self.tracker.handle_success(subscription)

    async def fan_out(
        self, subscriptions: Sequence[SubscriptionSnapshot], event: ResourceChangeEvent
    ) -> List[Optional[SubscriptionSnapshot]]:
        """
        Send to every subscription concurrently. A subscription whose bookkeeping
        fails is logged and reported as None; the others are unaffected.
        """
        results = await asyncio.gather(
            *(self.send(sub, event) for sub in subscriptions),
            return_exceptions=True,
        )
        settled: List[Optional[SubscriptionSnapshot]] = []
        for sub, result in zip(subscriptions, results):
            if isinstance(result, BaseException):
                logger.error(
                    f"[Dispatch] Could not record outcome for subscription {sub.id}: {result!r}"
                )
                settled.append(None)
            else:
                settled.append(result)
        return settled
