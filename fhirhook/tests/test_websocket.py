import asyncio
import uuid
from unittest.mock import AsyncMock

from fhirhook.api.routes.websocket import stream_notifications
from fhirhook.notifications.bus import WEBSOCKET_TOPIC, event_bus


class FakeWebSocket:
    """Stands in for a client connection; push frames into `inbox`."""

    def __init__(self):
        self.inbox = asyncio.Queue()
        self.sent = []
        self.accepted = False
        self.close_code = None

    async def accept(self):
        self.accepted = True

    async def close(self, code=1000):
        self.close_code = code

    async def receive(self):
        return await self.inbox.get()

    async def send_json(self, data):
        self.sent.append(data)

    def disconnect(self):
        self.inbox.put_nowait({"type": "websocket.disconnect", "code": 1000})


async def settle():
    for _ in range(50):
        await asyncio.sleep(0)


def known_repository():
    repository = AsyncMock()
    repository.get.return_value = object()
    return repository


async def test_stream_forwards_only_own_notifications():
    sub_id = uuid.uuid4()
    ws = FakeWebSocket()
    listeners = event_bus.subscriber_count(WEBSOCKET_TOPIC)

    task = asyncio.create_task(stream_notifications(ws, sub_id, known_repository()))
    await settle()
    assert ws.accepted
    assert event_bus.subscriber_count(WEBSOCKET_TOPIC) == listeners + 1

    mine = {"subscriptionId": str(sub_id), "notification": {"id": "notification-1"}}
    event_bus.publish(WEBSOCKET_TOPIC, {"subscriptionId": str(uuid.uuid4()), "notification": {}})
    event_bus.publish(WEBSOCKET_TOPIC, mine)
    # Client chatter does not end the stream
    ws.inbox.put_nowait({"type": "websocket.receive", "text": "ping"})
    await settle()

    assert ws.sent == [mine]
    assert not task.done()

    ws.disconnect()
    await asyncio.wait_for(task, timeout=1)
    assert event_bus.subscriber_count(WEBSOCKET_TOPIC) == listeners


async def test_idle_disconnect_unsubscribes():
    """A client that leaves before any notification arrives is cleaned up."""
    ws = FakeWebSocket()
    listeners = event_bus.subscriber_count(WEBSOCKET_TOPIC)

    task = asyncio.create_task(stream_notifications(ws, uuid.uuid4(), known_repository()))
    await settle()
    ws.disconnect()
    await asyncio.wait_for(task, timeout=1)

    assert ws.sent == []
    assert event_bus.subscriber_count(WEBSOCKET_TOPIC) == listeners


async def test_unknown_subscription_is_refused():
    ws = FakeWebSocket()
    repository = AsyncMock()
    repository.get.return_value = None
    listeners = event_bus.subscriber_count(WEBSOCKET_TOPIC)

    await stream_notifications(ws, uuid.uuid4(), repository)

    assert ws.close_code == 1008
    assert not ws.accepted
    assert event_bus.subscriber_count(WEBSOCKET_TOPIC) == listeners
