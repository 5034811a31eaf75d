import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from fhirhook.db.repository import SubscriptionRepository
from fhirhook.matching.matcher import SubscriptionMatcher
from fhirhook.models.snapshot import ResourceChangeEvent, SubscriptionSnapshot
from fhirhook.notifications.bus import EventBus, event_bus
from fhirhook.notifications.channels import build_channels
from fhirhook.notifications.dispatcher import NotificationDispatcher
from fhirhook.notifications.outcomes import DeliveryOutcomeTracker

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def build_dispatcher(
    repository: SubscriptionRepository, bus: Optional[EventBus] = None
) -> NotificationDispatcher:
    return NotificationDispatcher(
        channels=build_channels(bus or event_bus),
        tracker=DeliveryOutcomeTracker(repository),
    )


def to_event(data: Union[ResourceChangeEvent, Dict[str, Any]]) -> ResourceChangeEvent:
    """Accept either an event object or its FHIR-style JSON form."""
    if isinstance(data, ResourceChangeEvent):
        return data
    return ResourceChangeEvent(
        event_type=data["eventType"],
        resource_type=data["resourceType"],
        resource_id=str(data["resourceId"]),
        resource=data.get("resource"),
        previous_resource=data.get("previousResource"),
    )


async def handle_resource_change(
    event: Union[ResourceChangeEvent, Dict[str, Any]],
    repository: SubscriptionRepository,
    dispatcher: Optional[NotificationDispatcher] = None,
    now: Optional[datetime] = None,
) -> List[Optional[SubscriptionSnapshot]]:
    """
    1) Find subscriptions whose criteria match the changed resource.
    2) Deliver to all of them concurrently.
    3) Record each outcome on its subscription.
    Delivery failures stay on the subscriptions; store query failures are raised.
    """
    event = to_event(event)
    dispatcher = dispatcher or build_dispatcher(repository)

    try:
        matcher = SubscriptionMatcher(event.subject_resource(), repository)
        matches = await matcher.find_matching_subscriptions(now)
    except Exception:
        logger.exception(
            f"[Notify] Subscription lookup failed for {event.event_type} {event.focus_reference}"
        )
        raise

    if not matches:
        logger.info(f"[Notify] No subscriptions for {event.event_type} {event.focus_reference}")
        return []

    logger.info(
        f"[Notify] {event.event_type} {event.focus_reference} matched {len(matches)} subscription(s)"
    )
    return await dispatcher.fan_out(matches, event)
