"""
In-process change feed for chat rooms.

Every persisted message is published as an ``INSERT`` event to the
subscribers of its room. Subscribers are asyncio queues owned by open
WebSocket connections; publishing is thread-safe because sync route
handlers run in FastAPI's threadpool while the sockets live on the
event loop. Delivery is at-least-once; clients dedupe by message id or
``client_id``.
"""
import asyncio
import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict

logger = logging.getLogger("givehaven.realtime")


@dataclass
class Subscription:
    room_id: int
    loop: asyncio.AbstractEventLoop
    queue: "asyncio.Queue[Dict[str, Any]]" = field(default_factory=asyncio.Queue)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)


class RoomBroker:
    def __init__(self) -> None:
        self._rooms: Dict[int, Dict[str, Subscription]] = {}
        self._lock = threading.RLock()

    def subscribe(self, room_id: int) -> Subscription:
        """Register a subscriber on the running event loop."""
        sub = Subscription(room_id=room_id, loop=asyncio.get_running_loop())
        with self._lock:
            self._rooms.setdefault(room_id, {})[sub.id] = sub
        logger.debug("Subscription %s opened on room %s", sub.id, room_id)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            subs = self._rooms.get(sub.room_id)
            if not subs:
                return
            subs.pop(sub.id, None)
            if not subs:
                del self._rooms[sub.room_id]
        logger.debug("Subscription %s closed on room %s", sub.id, sub.room_id)

    def subscriber_count(self, room_id: int) -> int:
        with self._lock:
            return len(self._rooms.get(room_id, {}))

    def publish(self, room_id: int, event: Dict[str, Any]) -> int:
        """Push ``event`` to every subscriber of the room. Returns the fan-out."""
        with self._lock:
            subs = list(self._rooms.get(room_id, {}).values())
        delivered = 0
        for sub in subs:
            if sub.loop.is_closed():
                self.unsubscribe(sub)
                continue
            sub.loop.call_soon_threadsafe(sub.queue.put_nowait, event)
            delivered += 1
        return delivered

    def publish_insert(self, room_id: int, message: Dict[str, Any]) -> int:
        return self.publish(room_id, {"event": "INSERT", "message": message})
