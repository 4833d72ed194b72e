from fastapi import WebSocket, WebSocketDisconnect
from typing import Dict, List, Optional
import json
import time
import uuid
import asyncio
import logging

import config
from broadcast import BroadcastCoordinator
from buzz_ledger import BuzzLedger
from errors import BuzzerError, InvalidRequest, RateLimited
from messages import RoomRequest, parse
from rooms import RoomRegistry
from round_controller import RoundController
from session_manager import SessionManager

logger = logging.getLogger(__name__)


class SocketManager:
    """Single dispatch point for every inbound action.

    All actions, disconnects included, run one at a time under ``self.lock``.
    Each one mutates room state and queues its pushes without waiting on any
    socket. Buzz order is the order in which buzz actions acquire that lock.
    """

    def __init__(self, grace_seconds: Optional[float] = None):
        self.registry = RoomRegistry()
        self.broadcaster = BroadcastCoordinator(self.registry)
        self.sessions = SessionManager(self.registry, self.broadcaster, grace_seconds=grace_seconds)
        self.ledger = BuzzLedger(self.registry, self.broadcaster)
        self.rounds = RoundController(self.registry, self.broadcaster)
        self.lock = asyncio.Lock()
        self.allowed_origins: List[str] = []
        # WS rate limiting: connection_id -> list of timestamps
        self.msg_timestamps: Dict[str, list] = {}

    @property
    def rooms(self):
        return self.registry.rooms

    def clear(self):
        """Drop all rooms and connections. Used on shutdown and by tests."""
        self.sessions.cancel_pending()
        self.sessions.memberships.clear()
        self.registry.clear()
        self.broadcaster.clear()
        self.msg_timestamps.clear()
        self.lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket):
        # Validate WebSocket origin
        origin = websocket.headers.get("origin", "")
        if self.allowed_origins and origin not in self.allowed_origins:
            logger.warning("Rejected WebSocket from unauthorized origin: %s", origin)
            await websocket.close(code=1008)
            return

        await websocket.accept()
        connection_id = uuid.uuid4().hex
        self.broadcaster.register(connection_id, websocket)
        logger.info("Connected: %s", connection_id)

        try:
            while True:
                data = await websocket.receive_text()
                await self.handle_text(connection_id, data)
        except WebSocketDisconnect:
            logger.info("Client %s disconnected", connection_id)
        except Exception:
            logger.exception("WebSocket error for client %s", connection_id)
        finally:
            await self.disconnect(connection_id)

    async def disconnect(self, connection_id: str):
        async with self.lock:
            await self.sessions.leave(connection_id)
            self.broadcaster.unregister(connection_id)
            self.msg_timestamps.pop(connection_id, None)

    async def handle_text(self, connection_id: str, data: str):
        async with self.lock:
            try:
                message = self._decode(connection_id, data)
                await self.handle_message(connection_id, message)
            except BuzzerError as exc:
                logger.info("Rejected action from %s: %s", connection_id, exc.message)
                self.broadcaster.send_error(connection_id, exc)

    def _decode(self, connection_id: str, data: str) -> dict:
        # Enforce message size limit
        if len(data) > config.MAX_WS_MESSAGE_SIZE:
            raise InvalidRequest("Message too large")

        # Per-client rate limiting
        now = time.time()
        timestamps = self.msg_timestamps.setdefault(connection_id, [])
        timestamps[:] = [t for t in timestamps if now - t < 1.0]
        if len(timestamps) >= config.WS_RATE_LIMIT_PER_SEC:
            raise RateLimited()
        timestamps.append(now)

        try:
            message = json.loads(data)
        except json.JSONDecodeError:
            logger.warning("Malformed JSON from client %s: %s", connection_id, data[:100])
            raise InvalidRequest("Invalid message format")
        if not isinstance(message, dict):
            raise InvalidRequest("Invalid message format")
        return message

    async def handle_message(self, connection_id: str, message: dict):
        msg_type = message.get("type")

        if msg_type == "join_room":
            await self.sessions.join(connection_id, message.get("room"),
                                     message.get("name"), message.get("role"))

        elif msg_type == "buzz":
            request = parse(RoomRequest, message)
            await self.ledger.record_buzz(connection_id, request.room)

        elif msg_type == "start_round":
            request = parse(RoomRequest, message)
            await self.rounds.start(connection_id, request.room)

        elif msg_type == "stop_round":
            request = parse(RoomRequest, message)
            await self.rounds.stop(connection_id, request.room)

        elif msg_type == "reset":
            request = parse(RoomRequest, message)
            await self.rounds.reset(connection_id, request.room)

        else:
            raise InvalidRequest(f"Unknown action: {msg_type}")


socket_manager = SocketManager()
