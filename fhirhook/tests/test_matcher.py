from datetime import datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from fhirhook.matching.matcher import SubscriptionMatcher
from fhirhook.notifications.outcomes import DeliveryOutcomeTracker

OBSERVATION = {
    "resourceType": "Observation",
    "status": "final",
    "code": {"coding": [{"code": "85354-9"}]},
    "meta": {"profile": ["P"]},
}


async def test_only_active_subscriptions_are_returned(repository, make_subscription):
    active = await make_subscription(status="active", criteria="Observation")
    await make_subscription(status="requested", criteria="Observation")
    await make_subscription(status="error", criteria="Observation")
    await make_subscription(status="off", criteria="Observation")

    matches = await SubscriptionMatcher(OBSERVATION, repository).find_matching_subscriptions()

    assert [m.id for m in matches] == [active.id]


async def test_expired_subscriptions_are_excluded(repository, make_subscription):
    now = datetime.utcnow()
    open_ended = await make_subscription(criteria="Observation", end=None)
    future = await make_subscription(criteria="Observation", end=now + timedelta(days=1))
    await make_subscription(criteria="Observation", end=now - timedelta(seconds=1))
    await make_subscription(criteria="Observation", end=now)

    matches = await SubscriptionMatcher(OBSERVATION, repository).find_matching_subscriptions(now)

    assert {m.id for m in matches} == {open_ended.id, future.id}
    assert all(m.status == "active" for m in matches)
    assert all(m.end is None or m.end > now for m in matches)


async def test_coarse_filter_is_a_case_insensitive_type_prefix(repository):
    await _create_many(
        repository,
        "Observation",
        "OBSERVATION?status=final",
        "Observation?status=final",
        "ObservationDefinition",
        "Patient?active=true",
    )

    candidates = await repository.find_candidates("Observation")

    assert [c.criteria for c in candidates] == [
        "Observation",
        "OBSERVATION?status=final",
        "Observation?status=final",
    ]


async def test_precise_filter_applies_every_parameter(repository, make_subscription):
    both = await make_subscription(criteria="Observation?_profile=P&status=final")
    await make_subscription(criteria="Observation?status=preliminary")
    await make_subscription(criteria="Observation?status=final&category=labs")
    code = await make_subscription(criteria="Observation?code=85354-9")
    # Coarse query accepts it, exact resource type comparison rejects it
    await make_subscription(criteria="OBSERVATION?status=final")

    matches = await SubscriptionMatcher(OBSERVATION, repository).find_matching_subscriptions()

    assert [m.id for m in matches] == [both.id, code.id]


async def test_no_matches_is_an_empty_list(repository, make_subscription):
    await make_subscription(criteria="Patient?active=true")

    matches = await SubscriptionMatcher(OBSERVATION, repository).find_matching_subscriptions()

    assert matches == []


async def test_resource_without_type_skips_the_store():
    repository = AsyncMock()

    matches = await SubscriptionMatcher({"status": "final"}, repository).find_matching_subscriptions()

    assert matches == []
    repository.find_candidates.assert_not_awaited()


async def test_store_failures_propagate():
    repository = AsyncMock()
    repository.find_candidates.side_effect = RuntimeError("database unavailable")

    with pytest.raises(RuntimeError, match="database unavailable"):
        await SubscriptionMatcher(OBSERVATION, repository).find_matching_subscriptions()


async def test_fifth_failure_removes_subscription_from_matching(repository, make_subscription):
    sub = await make_subscription(criteria="Observation?status=final", error_count=4)
    matcher = SubscriptionMatcher(OBSERVATION, repository)
    [candidate] = await matcher.find_matching_subscriptions()

    await DeliveryOutcomeTracker(repository).handle_failure(candidate, RuntimeError("HTTP 503"))

    stored = await repository.get(sub.id)
    assert stored.error_count == 5
    assert stored.status == "error"
    assert stored.last_error == "HTTP 503"
    assert await matcher.find_matching_subscriptions() == []
    assert await matcher.find_matching_subscriptions() == []


async def _create_many(repository, *criteria_list):
    for criteria in criteria_list:
        await repository.create(
            status="active",
            criteria=criteria,
            channel_type="websocket",
            channel_header={},
            error_count=0,
        )
