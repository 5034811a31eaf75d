import asyncio
import logging
from uuid import UUID

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status

from fhirhook.api.deps import get_repository
from fhirhook.db.repository import SubscriptionRepository
from fhirhook.notifications.bus import WEBSOCKET_TOPIC, event_bus

logger = logging.getLogger(__name__)

router = APIRouter()


async def forward_notifications(websocket: WebSocket, queue: asyncio.Queue, subscription_id: str) -> None:
    """
    Send this subscription's messages from the queue until the client disconnects.
    Waits on the queue and the socket together so an idle connection still sees
    the disconnect.
    """
    receiver = asyncio.ensure_future(websocket.receive())
    try:
        while True:
            getter = asyncio.ensure_future(queue.get())
            done, _ = await asyncio.wait(
                {getter, receiver}, return_when=asyncio.FIRST_COMPLETED
            )

            if getter in done:
                message = getter.result()
                if message.get("subscriptionId") == subscription_id:
                    await websocket.send_json(message)
            else:
                getter.cancel()

            if receiver in done:
                # Anything the client sends is ignored
                if receiver.result()["type"] == "websocket.disconnect":
                    return
                receiver = asyncio.ensure_future(websocket.receive())
    finally:
        receiver.cancel()


@router.websocket("/ws/Subscription/{subscription_id}")
async def stream_notifications(
    websocket: WebSocket,
    subscription_id: UUID,
    repository: SubscriptionRepository = Depends(get_repository),
):
    """Forward websocket-channel notifications for one subscription to the client."""
    if await repository.get(subscription_id) is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    queue = event_bus.subscribe(WEBSOCKET_TOPIC)
    sid = str(subscription_id)
    try:
        await forward_notifications(websocket, queue, sid)
        logger.info(f"[WebSocket] Client for {sid} disconnected")
    except WebSocketDisconnect:
        logger.info(f"[WebSocket] Client for {sid} disconnected")
    finally:
        event_bus.unsubscribe(WEBSOCKET_TOPIC, queue)
