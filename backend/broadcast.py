from fastapi import WebSocket
from typing import Dict, List, Optional, Set
import asyncio
import logging

import config
from errors import BuzzerError
from rooms import RoomRegistry, normalize_room_code

logger = logging.getLogger(__name__)


class BroadcastCoordinator:
    """Tracks live connections and the room groups they belong to.

    Pushes are queued per connection and written by that connection's own
    writer task, so publishing never waits on the network. Callers hold the
    dispatch lock while queueing, so every connection receives pushes in the
    order the triggering actions were accepted.
    """

    def __init__(self, registry: RoomRegistry):
        self.registry = registry
        self.connections: Dict[str, WebSocket] = {}
        self.groups: Dict[str, Set[str]] = {}  # room_code -> connection ids
        self.queues: Dict[str, asyncio.Queue] = {}
        self.writers: Dict[str, asyncio.Task] = {}

    def register(self, connection_id: str, websocket: WebSocket):
        previous = self.writers.pop(connection_id, None)
        if previous and not previous.done():
            previous.cancel()
        self.connections[connection_id] = websocket
        queue: asyncio.Queue = asyncio.Queue()
        self.queues[connection_id] = queue
        self.writers[connection_id] = asyncio.create_task(
            self._writer(connection_id, websocket, queue)
        )

    def unregister(self, connection_id: str):
        self.connections.pop(connection_id, None)
        self.queues.pop(connection_id, None)
        writer = self.writers.pop(connection_id, None)
        if writer and not writer.done():
            writer.cancel()
        for code in list(self.groups):
            self.discard_from_group(code, connection_id)

    def clear(self):
        for writer in self.writers.values():
            if not writer.done() and not writer.get_loop().is_closed():
                writer.cancel()
        self.writers.clear()
        self.queues.clear()
        self.connections.clear()
        self.groups.clear()

    async def _writer(self, connection_id: str, websocket: WebSocket, queue: asyncio.Queue):
        """Deliver queued messages in order. A stalled or broken socket is closed and skipped."""
        failed = False
        while True:
            message = await queue.get()
            try:
                if not failed:
                    await asyncio.wait_for(websocket.send_json(message), timeout=config.WS_SEND_TIMEOUT)
            except asyncio.TimeoutError:
                failed = True
                logger.warning("Send to %s timed out, closing connection", connection_id)
                try:
                    await asyncio.wait_for(websocket.close(code=1011), timeout=config.WS_SEND_TIMEOUT)
                except Exception:
                    logger.debug("Close of %s failed", connection_id, exc_info=True)
            except Exception:
                # The receive loop sees the disconnect and runs the leave path.
                failed = True
                logger.debug("Send to %s failed", connection_id, exc_info=True)
            finally:
                queue.task_done()

    async def flush(self):
        """Wait until every queued message has been written or dropped."""
        await asyncio.gather(*(q.join() for q in list(self.queues.values())))

    def add_to_group(self, code: str, connection_id: str):
        self.groups.setdefault(normalize_room_code(code), set()).add(connection_id)

    def discard_from_group(self, code: str, connection_id: str):
        room_code = normalize_room_code(code)
        members = self.groups.get(room_code)
        if members is None:
            return
        members.discard(connection_id)
        if not members:
            del self.groups[room_code]

    def members(self, code: str) -> List[str]:
        return sorted(self.groups.get(normalize_room_code(code), ()))

    def send_to(self, connection_id: str, message: dict) -> bool:
        queue = self.queues.get(connection_id)
        if queue is None:
            return False
        queue.put_nowait(message)
        return True

    def send_error(self, connection_id: str, error: BuzzerError):
        self.send_to(connection_id, error.to_message())

    def _send_to_group(self, code: str, message: dict):
        for connection_id in self.members(code):
            self.send_to(connection_id, message)

    def publish_snapshot(self, code: str):
        room = self.registry.get(code)
        if room is None:
            return
        message = {"type": "room_update", **room.snapshot().model_dump()}
        self._send_to_group(room.room_code, message)

    def publish_event(self, code: str, signal: str, payload: Optional[dict] = None):
        message = {"type": signal}
        if payload:
            message.update(payload)
        self._send_to_group(code, message)
