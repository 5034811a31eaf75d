"""Delivery health bookkeeping for subscriptions.

Each transition is a pure function from one snapshot to a new snapshot plus the
column changes that have to be written back. Only changed columns are written so
concurrent transitions on the same row resolve last-write-wins per column.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, Optional

from fhirhook.models.snapshot import SubscriptionSnapshot, SubscriptionStatus

logger = logging.getLogger(__name__)

MAX_CONSECUTIVE_FAILURES = 5


@dataclass(frozen=True)
class Transition:
    subscription: SubscriptionSnapshot
    changes: Dict[str, Any]


def _transition(sub: SubscriptionSnapshot, **changes: Any) -> Transition:
    return Transition(subscription=replace(sub, **changes), changes=changes)


def record_success(
    sub: SubscriptionSnapshot, now: Optional[datetime] = None
) -> Transition:
    now = now or datetime.utcnow()
    return _transition(
        sub,
        last_notification=now,
        last_successful_notification=now,
        error_count=0,
        last_error=None,
    )


def record_failure(sub: SubscriptionSnapshot, message: str) -> Transition:
    error_count = sub.error_count + 1
    if error_count >= MAX_CONSECUTIVE_FAILURES:
        return _transition(
            sub,
            error_count=error_count,
            last_error=message,
            status=SubscriptionStatus.ERROR.value,
        )
    return _transition(sub, error_count=error_count, last_error=message)


def activated(sub: SubscriptionSnapshot) -> Transition:
    return _transition(
        sub,
        status=SubscriptionStatus.ACTIVE.value,
        error_count=0,
        last_error=None,
    )


def deactivated(sub: SubscriptionSnapshot) -> Transition:
    return _transition(sub, status=SubscriptionStatus.OFF.value)


def error_message(error: BaseException) -> str:
    return str(error) or error.__class__.__name__


class DeliveryOutcomeTracker:
    """Persists the outcome of each delivery attempt."""

    def __init__(self, repository):
        self.repository = repository

    async def handle_success(
        self, sub: SubscriptionSnapshot, now: Optional[datetime] = None
    ) -> SubscriptionSnapshot:
        transition = record_success(sub, now)
        await self.repository.apply(transition)
        return transition.subscription

    async def handle_failure(
        self, sub: SubscriptionSnapshot, error: BaseException
    ) -> SubscriptionSnapshot:
        transition = record_failure(sub, error_message(error))
        updated = transition.subscription
        logger.warning(
            f"[Delivery] Sub {sub.id} failed ({updated.error_count} in a row): {updated.last_error}"
        )
        if updated.status != sub.status and updated.status == SubscriptionStatus.ERROR.value:
            logger.error(
                f"[Delivery] Sub {sub.id} set to error after {updated.error_count} consecutive failures"
            )
        await self.repository.apply(transition)
        return updated
