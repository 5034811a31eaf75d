from fastapi import Depends

from fhirhook.db.repository import SubscriptionRepository
from fhirhook.db.session import AsyncSessionLocal
from fhirhook.services.lifecycle import SubscriptionLifecycle


def get_repository() -> SubscriptionRepository:
    return SubscriptionRepository(AsyncSessionLocal)


def get_lifecycle(
    repository: SubscriptionRepository = Depends(get_repository),
) -> SubscriptionLifecycle:
    return SubscriptionLifecycle(repository)
