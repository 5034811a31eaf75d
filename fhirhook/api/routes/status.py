from fastapi import APIRouter, Depends, HTTPException, status
from uuid import UUID

from fhirhook.api.deps import get_repository
from fhirhook.api.schemas import SubscriptionHealth
from fhirhook.db.repository import SubscriptionRepository

router = APIRouter()


@router.get(
    "/Subscription/{subscription_id}/$status",
    response_model=SubscriptionHealth,
    summary="Get delivery health for a subscription",
)
async def get_subscription_status(
    subscription_id: UUID,
    repository: SubscriptionRepository = Depends(get_repository),
):
    sub = await repository.get(subscription_id)
    if sub is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Subscription not found",
        )

    return {
        "subscriptionId": sub.id,
        "status": sub.status,
        "errorCount": sub.error_count,
        "lastError": sub.last_error,
        "lastNotification": sub.last_notification,
        "lastSuccessfulNotification": sub.last_successful_notification,
    }
