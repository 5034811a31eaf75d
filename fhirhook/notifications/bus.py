import asyncio
import logging
from collections import defaultdict
from typing import Any, Dict, List

logger = logging.getLogger(__name__)

WEBSOCKET_TOPIC = "websocket.notification"
DEFAULT_QUEUE_SIZE = 100


class EventBus:
    """
    In-process publish/subscribe.

    Each subscriber gets its own bounded asyncio.Queue. Publishing never waits:
    when a subscriber falls behind, its oldest message is dropped.
    """

    def __init__(self, queue_size: int = DEFAULT_QUEUE_SIZE):
        self.queue_size = queue_size
        self._subscribers: Dict[str, List[asyncio.Queue]] = defaultdict(list)

    def subscribe(self, topic: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        self._subscribers[topic].append(queue)
        return queue

    def unsubscribe(self, topic: str, queue: asyncio.Queue) -> None:
        queues = self._subscribers.get(topic, [])
        if queue in queues:
            queues.remove(queue)
        if not queues:
            self._subscribers.pop(topic, None)

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, []))

    def publish(self, topic: str, message: Any) -> int:
        """Hand the message to every subscriber of the topic; returns how many got it."""
        queues = list(self._subscribers.get(topic, []))
        for queue in queues:
            if queue.full():
                queue.get_nowait()
                logger.warning(f"[Bus] Subscriber on {topic} is behind, dropped oldest message")
            queue.put_nowait(message)
        return len(queues)


# Shared by the API process: the websocket channel publishes here and the
# websocket route listens here.
event_bus = EventBus()
