from typing import Any, Dict, Optional
from uuid import UUID
from datetime import datetime
from pydantic import AnyHttpUrl, BaseModel, Field, model_validator

from fhirhook.models.snapshot import (
    ChannelType,
    EventType,
    ResourceChangeEvent,
    SubscriptionSnapshot,
    SubscriptionStatus,
)


class ChannelIn(BaseModel):
    type: ChannelType
    endpoint: Optional[AnyHttpUrl] = None
    payload: Optional[str] = None
    header: Optional[Dict[str, str]] = None


def _require_rest_hook_endpoint(channel: Optional[ChannelIn]) -> None:
    if channel is not None and channel.type == ChannelType.REST_HOOK and channel.endpoint is None:
        raise ValueError("rest-hook channel requires an endpoint")


class SubscriptionCreate(BaseModel):
    status: SubscriptionStatus = SubscriptionStatus.REQUESTED
    criteria: str
    channel: ChannelIn
    reason: Optional[str] = None
    end: Optional[datetime] = None

    @model_validator(mode="after")
    def rest_hook_needs_endpoint(self):
        _require_rest_hook_endpoint(self.channel)
        return self


class SubscriptionUpdate(BaseModel):
    criteria: Optional[str] = None
    channel: Optional[ChannelIn] = None
    reason: Optional[str] = None
    end: Optional[datetime] = None

    @model_validator(mode="after")
    def rest_hook_needs_endpoint(self):
        _require_rest_hook_endpoint(self.channel)
        return self


class ChannelOut(BaseModel):
    type: str
    endpoint: Optional[str] = None
    payload: Optional[str] = None
    header: Dict[str, str] = {}


class SubscriptionOut(BaseModel):
    resource_type: str = Field("Subscription", alias="resourceType")
    id: UUID
    status: str
    criteria: str
    reason: Optional[str] = None
    end: Optional[datetime] = None
    channel: ChannelOut
    error_count: int = Field(0, alias="errorCount")
    last_error: Optional[str] = Field(None, alias="lastError")
    last_notification: Optional[datetime] = Field(None, alias="lastNotification")
    last_successful_notification: Optional[datetime] = Field(
        None, alias="lastSuccessfulNotification"
    )

    class Config:
        populate_by_name = True

    @classmethod
    def from_snapshot(cls, sub: SubscriptionSnapshot) -> "SubscriptionOut":
        return cls(
            id=sub.id,
            status=sub.status,
            criteria=sub.criteria,
            reason=sub.reason,
            end=sub.end,
            channel=ChannelOut(
                type=sub.channel_type,
                endpoint=sub.channel_endpoint,
                payload=sub.channel_payload,
                header=sub.channel_header,
            ),
            error_count=sub.error_count,
            last_error=sub.last_error,
            last_notification=sub.last_notification,
            last_successful_notification=sub.last_successful_notification,
        )


class SubscriptionHealth(BaseModel):
    subscription_id: UUID = Field(alias="subscriptionId")
    status: str
    error_count: int = Field(alias="errorCount")
    last_error: Optional[str] = Field(None, alias="lastError")
    last_notification: Optional[datetime] = Field(None, alias="lastNotification")
    last_successful_notification: Optional[datetime] = Field(
        None, alias="lastSuccessfulNotification"
    )

    class Config:
        populate_by_name = True


class ResourceChangeEventIn(BaseModel):
    event_type: EventType = Field(alias="eventType")
    resource_type: str = Field(alias="resourceType")
    resource_id: str = Field(alias="resourceId")
    resource: Optional[Dict[str, Any]] = None
    previous_resource: Optional[Dict[str, Any]] = Field(None, alias="previousResource")

    class Config:
        populate_by_name = True

    @model_validator(mode="after")
    def body_matches_event_type(self):
        if self.event_type in (EventType.CREATE, EventType.UPDATE) and self.resource is None:
            raise ValueError(f"{self.event_type.value} events must carry the resource")
        if self.event_type == EventType.DELETE and self.previous_resource is None:
            raise ValueError("delete events must carry the previous resource")
        return self

    def to_event(self) -> ResourceChangeEvent:
        return ResourceChangeEvent(
            event_type=self.event_type.value,
            resource_type=self.resource_type,
            resource_id=self.resource_id,
            resource=self.resource,
            previous_resource=self.previous_resource,
        )
