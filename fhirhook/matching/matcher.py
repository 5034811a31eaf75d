from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, List, Mapping, Optional

from fhirhook.matching.criteria import CriteriaEvaluator
from fhirhook.models.snapshot import SubscriptionSnapshot

logger = logging.getLogger(__name__)


class SubscriptionMatcher:
    """Finds the subscriptions whose criteria match one resource.

    Phase 1 asks the repository for active, unexpired subscriptions on the
    resource type. Phase 2 evaluates each candidate's full criteria in memory,
    because multi-parameter criteria cannot be expressed by the store filter.
    Repository errors propagate to the caller.
    """

    def __init__(self, resource: Mapping[str, Any], repository):
        self.evaluator = CriteriaEvaluator(resource)
        self.repository = repository

    async def find_matching_subscriptions(
        self, now: Optional[datetime] = None
    ) -> List[SubscriptionSnapshot]:
        resource_type = self.evaluator.resource_type
        if not resource_type:
            return []

        candidates = await self.repository.find_candidates(resource_type, now)
        matches = [
            sub for sub in candidates if self.evaluator.matches_criteria(sub.criteria)
        ]
        logger.debug(
            f"[Matcher] {resource_type}: {len(candidates)} candidate(s), {len(matches)} match(es)"
        )
        return matches
