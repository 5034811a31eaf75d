import time
from datetime import datetime, timezone
from typing import Any, Dict

from fhirhook.models.snapshot import ResourceChangeEvent, SubscriptionSnapshot

PROBE_BUNDLE_ID = "test-notification"


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _now_ms() -> int:
    return int(time.time() * 1000)


def build_notification_bundle(
    subscription: SubscriptionSnapshot, event: ResourceChangeEvent
) -> Dict[str, Any]:
    """History Bundle carrying a SubscriptionStatus entry and, when present, the resource."""
    timestamp = _iso_now()
    event_number = _now_ms()
    entries = [
        {
            "resource": {
                "resourceType": "SubscriptionStatus",
                "id": f"status-{subscription.id}",
                "status": "active",
                "type": "event-notification",
                "subscription": {"reference": f"Subscription/{subscription.id}"},
                "topic": subscription.criteria,
                "notificationEvent": [
                    {
                        "eventNumber": event_number,
                        "timestamp": timestamp,
                        "focus": {"reference": event.focus_reference},
                    }
                ],
            }
        }
    ]
    if event.resource is not None:
        entries.append(
            {
                "fullUrl": event.focus_reference,
                "resource": dict(event.resource),
            }
        )
    return {
        "resourceType": "Bundle",
        "id": f"notification-{event_number}",
        "type": "history",
        "timestamp": timestamp,
        "entry": entries,
    }


def build_probe_bundle() -> Dict[str, Any]:
    return {
        "resourceType": "Bundle",
        "id": PROBE_BUNDLE_ID,
        "type": "history",
        "timestamp": _iso_now(),
        "entry": [],
    }
