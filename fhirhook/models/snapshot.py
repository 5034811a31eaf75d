"""Immutable views of subscriptions and resource-change events used by the engine."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional

DEFAULT_PAYLOAD_MIME = "application/fhir+json"


class SubscriptionStatus(str, Enum):
    REQUESTED = "requested"
    ACTIVE = "active"
    ERROR = "error"
    OFF = "off"


class ChannelType(str, Enum):
    REST_HOOK = "rest-hook"
    WEBSOCKET = "websocket"
    EMAIL = "email"
    SMS = "sms"
    MESSAGE = "message"


class EventType(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class SubscriptionSnapshot:
    id: uuid.UUID
    status: str
    criteria: str
    channel_type: str
    channel_endpoint: Optional[str] = None
    channel_payload: Optional[str] = None
    channel_header: Dict[str, str] = field(default_factory=dict)
    reason: Optional[str] = None
    end: Optional[datetime] = None
    error_count: int = 0
    last_error: Optional[str] = None
    last_notification: Optional[datetime] = None
    last_successful_notification: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Any) -> "SubscriptionSnapshot":
        return cls(
            id=row.id,
            status=row.status,
            criteria=row.criteria,
            channel_type=row.channel_type,
            channel_endpoint=row.channel_endpoint,
            channel_payload=row.channel_payload,
            channel_header=dict(row.channel_header or {}),
            reason=row.reason,
            end=row.end,
            error_count=row.error_count or 0,
            last_error=row.last_error,
            last_notification=row.last_notification,
            last_successful_notification=row.last_successful_notification,
        )

    def request_headers(self) -> Dict[str, str]:
        """Headers for rest-hook requests: content type first, channel headers on top."""
        headers = {"Content-Type": self.channel_payload or DEFAULT_PAYLOAD_MIME}
        for key, value in self.channel_header.items():
            headers[key] = str(value)
        return headers


@dataclass(frozen=True)
class ResourceChangeEvent:
    event_type: str
    resource_type: str
    resource_id: str
    resource: Optional[Mapping[str, Any]] = None
    previous_resource: Optional[Mapping[str, Any]] = None

    def subject_resource(self) -> Mapping[str, Any]:
        """The resource criteria are evaluated against.

        Deletes only carry the previous state; events without any body fall back
        to a stub that can only satisfy type-only criteria.
        """
        if self.resource is not None:
            return self.resource
        if self.previous_resource is not None:
            return self.previous_resource
        return {"resourceType": self.resource_type, "id": self.resource_id}

    @property
    def focus_reference(self) -> str:
        return f"{self.resource_type}/{self.resource_id}"
