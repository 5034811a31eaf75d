"""Delivery strategies, one per subscription channel type.

A channel either returns normally or raises DeliveryError. Adding a channel kind
means adding a class here and an entry in build_channels().
"""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Dict

import httpx

from fhirhook.errors import DeliveryError
from fhirhook.models.snapshot import ChannelType, SubscriptionSnapshot
from fhirhook.notifications.bus import WEBSOCKET_TOPIC, EventBus

logger = logging.getLogger(__name__)

HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "5"))


class NotificationChannel(ABC):
    kind: ChannelType

    @abstractmethod
    async def deliver(self, subscription: SubscriptionSnapshot, bundle: Dict[str, Any]) -> None:
        """Deliver the bundle or raise DeliveryError."""


class RestHookChannel(NotificationChannel):
    kind = ChannelType.REST_HOOK

    def __init__(self, timeout: float = HTTP_TIMEOUT):
        self.timeout = timeout

    async def deliver(self, subscription, bundle):
        endpoint = subscription.channel_endpoint
        if not endpoint:
            raise DeliveryError(f"Subscription {subscription.id} has no rest-hook endpoint")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    endpoint,
                    json=bundle,
                    headers=subscription.request_headers(),
                )
        except Exception as exc:
            raise DeliveryError(str(exc) or exc.__class__.__name__) from exc

        if not 200 <= resp.status_code < 300:
            raise DeliveryError(f"HTTP {resp.status_code}")
        logger.info(f"[RestHook] Sent notification to {endpoint} ({resp.status_code})")


class WebSocketChannel(NotificationChannel):
    kind = ChannelType.WEBSOCKET

    def __init__(self, bus: EventBus):
        self.bus = bus

    async def deliver(self, subscription, bundle):
        listeners = self.bus.publish(
            WEBSOCKET_TOPIC,
            {"subscriptionId": str(subscription.id), "notification": bundle},
        )
        logger.info(
            f"[WebSocket] Published notification for {subscription.id} to {listeners} listener(s)"
        )


class LoggingChannel(NotificationChannel):
    """Placeholder transport that only records the notification in the log."""

    async def deliver(self, subscription, bundle):
        logger.info(
            f"[{self.kind.value}] Notification {bundle.get('id')} for subscription {subscription.id}"
        )


class EmailChannel(LoggingChannel):
    kind = ChannelType.EMAIL


class SmsChannel(LoggingChannel):
    kind = ChannelType.SMS


class MessageChannel(LoggingChannel):
    kind = ChannelType.MESSAGE


def build_channels(bus: EventBus, http_timeout: float = HTTP_TIMEOUT) -> Dict[ChannelType, NotificationChannel]:
    channels = [
        RestHookChannel(timeout=http_timeout),
        WebSocketChannel(bus),
        EmailChannel(),
        SmsChannel(),
        MessageChannel(),
    ]
    return {channel.kind: channel for channel in channels}
