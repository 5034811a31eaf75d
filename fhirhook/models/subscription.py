import uuid
from datetime import datetime
from sqlalchemy import Column, DateTime, Index, Integer, JSON, String, Text, Uuid
from fhirhook.db.session import Base


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    # "requested", "active", "error", "off"
    status = Column(String(16), nullable=False, index=True)
    criteria = Column(Text, nullable=False, index=True)
    reason = Column(Text, nullable=True)
    end = Column(DateTime(timezone=False), nullable=True)

    # "rest-hook", "websocket", "email", "sms", "message"
    channel_type = Column(String(32), nullable=False, index=True)
    channel_endpoint = Column(Text, nullable=True)
    channel_payload = Column(Text, nullable=True)
    channel_header = Column(JSON, nullable=True)

    error_count = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    last_notification = Column(DateTime(timezone=False), nullable=True, index=True)
    last_successful_notification = Column(DateTime(timezone=False), nullable=True)

    created_at = Column(DateTime(timezone=False), default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime(timezone=False),
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )


Index("ix_subscriptions_status_criteria", Subscription.status, Subscription.criteria)
