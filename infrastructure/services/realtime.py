import asyncio
import logging
from collections import defaultdict

from fastapi import WebSocket

logger = logging.getLogger(__name__)


def chat_topic(chat_id: int) -> str:
    return f"chat.{chat_id}"


class RealtimePublisher:
    """In-process topic fan-out to connected WebSocket clients."""

    def __init__(self):
        self._subscribers: dict[str, set[WebSocket]] = defaultdict(set)
        self._lock = asyncio.Lock()

    async def subscribe(self, topic: str, websocket: WebSocket):
        async with self._lock:
            self._subscribers[topic].add(websocket)

    async def unsubscribe(self, topic: str, websocket: WebSocket):
        async with self._lock:
            subscribers = self._subscribers.get(topic)
            if subscribers is not None:
                subscribers.discard(websocket)
                if not subscribers:
                    del self._subscribers[topic]

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, ()))

    async def publish(self, topic: str, message: dict) -> int:
        async with self._lock:
            subscribers = list(self._subscribers.get(topic, ()))
        delivered = 0
        for websocket in subscribers:
            try:
                await websocket.send_json(message)
                delivered += 1
            except Exception:
                logger.warning("Dropping dead subscriber on %s", topic, exc_info=True)
                await self.unsubscribe(topic, websocket)
        return delivered


realtime_hub = RealtimePublisher()
