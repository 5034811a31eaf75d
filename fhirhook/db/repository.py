import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import func, or_, select, update

from fhirhook.models.snapshot import SubscriptionSnapshot, SubscriptionStatus
from fhirhook.models.subscription import Subscription


def escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def ensure_uuid(value: Union[str, uuid.UUID]) -> uuid.UUID:
    """Convert string to UUID if needed."""
    if isinstance(value, str):
        return uuid.UUID(value)
    return value


class SubscriptionRepository:
    """
    Storage access for subscriptions.

    Every call opens its own short-lived session from the factory, so concurrent
    deliveries never share one AsyncSession.
    """

    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def get(self, subscription_id: Union[str, uuid.UUID]) -> Optional[SubscriptionSnapshot]:
        async with self.session_factory() as session:
            row = await session.get(Subscription, ensure_uuid(subscription_id))
            if row is None:
                return None
            return SubscriptionSnapshot.from_row(row)

    async def find_candidates(
        self, resource_type: str, now: Optional[datetime] = None
    ) -> List[SubscriptionSnapshot]:
        """
        Coarse prefilter: active, unexpired subscriptions whose criteria start with
        the resource type followed by '?' or end of string (case-insensitive).
        Prefix LIKE keeps the query index-friendly.
        """
        now = now or datetime.utcnow()
        prefix = resource_type.lower()
        criteria = func.lower(Subscription.criteria)
        stmt = (
            select(Subscription)
            .where(Subscription.status == SubscriptionStatus.ACTIVE.value)
            .where(
                or_(
                    criteria == prefix,
                    criteria.like(f"{escape_like(prefix)}?%", escape="\\"),
                )
            )
            .where(or_(Subscription.end.is_(None), Subscription.end > now))
            .order_by(Subscription.created_at, Subscription.id)
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return [SubscriptionSnapshot.from_row(row) for row in result.scalars().all()]

    async def apply(self, transition) -> None:
        """Write the columns changed by a transition."""
        if not transition.changes:
            return
        values: Dict[str, Any] = dict(transition.changes)
        values["updated_at"] = datetime.utcnow()
        async with self.session_factory() as session:
            await session.execute(
                update(Subscription)
                .where(Subscription.id == transition.subscription.id)
                .values(**values)
            )
            await session.commit()

    # --- CRUD used by the API ---

    async def create(self, **fields) -> SubscriptionSnapshot:
        async with self.session_factory() as session:
            row = Subscription(**fields)
            session.add(row)
            await session.commit()
            await session.refresh(row)
            return SubscriptionSnapshot.from_row(row)

    async def list(
        self,
        status: Optional[str] = None,
        criteria: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[SubscriptionSnapshot]:
        stmt = select(Subscription)
        if status:
            stmt = stmt.where(Subscription.status == status)
        if criteria:
            stmt = stmt.where(
                func.lower(Subscription.criteria).like(
                    f"%{escape_like(criteria.lower())}%", escape="\\"
                )
            )
        stmt = stmt.order_by(Subscription.created_at, Subscription.id).offset(skip).limit(limit)
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return [SubscriptionSnapshot.from_row(row) for row in result.scalars().all()]

    async def update(
        self, subscription_id: Union[str, uuid.UUID], **fields
    ) -> Optional[SubscriptionSnapshot]:
        async with self.session_factory() as session:
            row = await session.get(Subscription, ensure_uuid(subscription_id))
            if row is None:
                return None
            for field, value in fields.items():
                setattr(row, field, value)
            await session.commit()
            await session.refresh(row)
            return SubscriptionSnapshot.from_row(row)

    async def delete(self, subscription_id: Union[str, uuid.UUID]) -> bool:
        async with self.session_factory() as session:
            row = await session.get(Subscription, ensure_uuid(subscription_id))
            if row is None:
                return False
            await session.delete(row)
            await session.commit()
            return True
