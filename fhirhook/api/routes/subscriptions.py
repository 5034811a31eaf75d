from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status

from fhirhook.api.deps import get_lifecycle, get_repository
from fhirhook.api.schemas import (
    SubscriptionCreate,
    SubscriptionOut,
    SubscriptionUpdate,
)
from fhirhook.db.repository import SubscriptionRepository
from fhirhook.errors import ActivationEndpointUnreachable, InvalidCriteria, SubscriptionNotFound
from fhirhook.matching.criteria import validate_criteria
from fhirhook.models.snapshot import SubscriptionStatus
from fhirhook.services.lifecycle import SubscriptionLifecycle

router = APIRouter()


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Timestamps are stored as naive UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _check_criteria(criteria: str) -> None:
    try:
        validate_criteria(criteria)
    except InvalidCriteria as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        )


def _not_found() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail="Subscription not found",
    )


def _unreachable(exc: ActivationEndpointUnreachable) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail=str(exc),
    )


@router.post(
    "",
    response_model=SubscriptionOut,
    status_code=status.HTTP_201_CREATED,
)
async def create_subscription(
    subscription_in: SubscriptionCreate,
    repository: SubscriptionRepository = Depends(get_repository),
    lifecycle: SubscriptionLifecycle = Depends(get_lifecycle),
):
    _check_criteria(subscription_in.criteria)

    channel = subscription_in.channel
    sub = await repository.create(
        status=subscription_in.status.value,
        criteria=subscription_in.criteria,
        reason=subscription_in.reason,
        end=_naive_utc(subscription_in.end),
        channel_type=channel.type.value,
        # Convert AnyHttpUrl to string before storing
        channel_endpoint=str(channel.endpoint) if channel.endpoint else None,
        channel_payload=channel.payload,
        channel_header=channel.header or {},
        error_count=0,
    )

    # Requested subscriptions go live straight away
    if sub.status == SubscriptionStatus.REQUESTED.value:
        try:
            sub = await lifecycle.activate(sub.id)
        except ActivationEndpointUnreachable as exc:
            raise _unreachable(exc)

    return SubscriptionOut.from_snapshot(sub)


@router.get("", response_model=List[SubscriptionOut])
async def list_subscriptions(
    status: Optional[SubscriptionStatus] = None,
    criteria: Optional[str] = None,
    skip: int = 0,
    limit: int = 100,
    repository: SubscriptionRepository = Depends(get_repository),
):
    subs = await repository.list(
        status=status.value if status else None,
        criteria=criteria,
        skip=skip,
        limit=limit,
    )
    return [SubscriptionOut.from_snapshot(sub) for sub in subs]


@router.get("/{subscription_id}", response_model=SubscriptionOut)
async def read_subscription(
    subscription_id: UUID,
    repository: SubscriptionRepository = Depends(get_repository),
):
    sub = await repository.get(subscription_id)
    if not sub:
        raise _not_found()
    return SubscriptionOut.from_snapshot(sub)


@router.patch("/{subscription_id}", response_model=SubscriptionOut)
async def update_subscription(
    subscription_id: UUID,
    subscription_in: SubscriptionUpdate,
    repository: SubscriptionRepository = Depends(get_repository),
):
    # Get update data, excluding unset fields
    update_data = subscription_in.model_dump(exclude_unset=True)

    fields = {}
    if "criteria" in update_data:
        _check_criteria(subscription_in.criteria)
        fields["criteria"] = subscription_in.criteria
    if "reason" in update_data:
        fields["reason"] = subscription_in.reason
    if "end" in update_data:
        fields["end"] = _naive_utc(subscription_in.end)
    if subscription_in.channel is not None:
        channel = subscription_in.channel
        fields.update(
            channel_type=channel.type.value,
            channel_endpoint=str(channel.endpoint) if channel.endpoint else None,
            channel_payload=channel.payload,
            channel_header=channel.header or {},
        )

    sub = await repository.update(subscription_id, **fields)
    if not sub:
        raise _not_found()
    return SubscriptionOut.from_snapshot(sub)


@router.delete(
    "/{subscription_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_subscription(
    subscription_id: UUID,
    repository: SubscriptionRepository = Depends(get_repository),
):
    if not await repository.delete(subscription_id):
        raise _not_found()

    # No return needed for 204
    return


@router.post("/{subscription_id}/$activate", response_model=SubscriptionOut)
async def activate_subscription(
    subscription_id: UUID,
    lifecycle: SubscriptionLifecycle = Depends(get_lifecycle),
):
    try:
        sub = await lifecycle.activate(subscription_id)
    except SubscriptionNotFound:
        raise _not_found()
    except ActivationEndpointUnreachable as exc:
        raise _unreachable(exc)
    return SubscriptionOut.from_snapshot(sub)


@router.post("/{subscription_id}/$deactivate", response_model=SubscriptionOut)
async def deactivate_subscription(
    subscription_id: UUID,
    lifecycle: SubscriptionLifecycle = Depends(get_lifecycle),
):
    try:
        sub = await lifecycle.deactivate(subscription_id)
    except SubscriptionNotFound:
        raise _not_found()
    return SubscriptionOut.from_snapshot(sub)
