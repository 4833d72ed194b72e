from typing import Dict, List, Optional, Set
import asyncio
import logging

import config
from broadcast import BroadcastCoordinator
from messages import JoinRoomRequest, parse
from rooms import PlayerInfo, Room, RoomRegistry, now_ms

logger = logging.getLogger(__name__)


class SessionManager:
    """Binds connections to a role (host or player) inside a room."""

    def __init__(self, registry: RoomRegistry, broadcaster: BroadcastCoordinator,
                 grace_seconds: Optional[float] = None):
        self.registry = registry
        self.broadcaster = broadcaster
        self.grace_seconds = config.EMPTY_ROOM_GRACE_SECONDS if grace_seconds is None else grace_seconds
        self.memberships: Dict[str, Set[str]] = {}  # connection_id -> room codes
        self._pending_deletes: Dict[str, asyncio.Task] = {}

    def rooms_of(self, connection_id: str) -> Set[str]:
        return set(self.memberships.get(connection_id, ()))

    async def join(self, connection_id: str, code, name, role) -> Room:
        request = parse(JoinRoomRequest, {"room": code, "name": name, "role": role})
        self._cancel_pending_delete(request.room)
        room = self.registry.get_or_create(request.room)

        if request.role == "HOST":
            if room.host_id and room.host_id != connection_id:
                logger.info("Host of room %s replaced by a new connection", room.room_code)
            room.host_id = connection_id
        else:
            room.players[connection_id] = PlayerInfo(name=request.name, joined_at=now_ms())

        self.memberships.setdefault(connection_id, set()).add(room.room_code)
        self.broadcaster.add_to_group(room.room_code, connection_id)
        logger.info("%s (%s) joined %s", request.name, request.role, room.room_code)
        self.broadcaster.publish_snapshot(room.room_code)
        return room

    async def leave(self, connection_id: str) -> List[str]:
        """Drop a connection from every room it joined. Returns the rooms it held a slot in."""
        vacated = []
        for code in sorted(self.memberships.pop(connection_id, ())):
            self.broadcaster.discard_from_group(code, connection_id)
            room = self.registry.get(code)
            if room is None:
                continue

            held_slot = False
            if room.host_id == connection_id:
                room.host_id = None
                held_slot = True
                logger.info("Host disconnected from room %s", code)
            player = room.players.pop(connection_id, None)
            if player is not None:
                held_slot = True
                logger.info("Player %s disconnected from room %s", player.name, code)
            if not held_slot:
                continue

            vacated.append(code)
            self.broadcaster.publish_snapshot(code)
            self._evaluate_delete(room)
        return vacated

    def _evaluate_delete(self, room: Room):
        if not room.is_empty():
            return
        if self.grace_seconds <= 0:
            self.registry.delete_if_empty(room.room_code)
            return
        self._cancel_pending_delete(room.room_code)
        self._pending_deletes[room.room_code] = asyncio.create_task(
            self._delayed_delete(room.room_code, self.grace_seconds)
        )
        logger.info("Room %s is empty, deleting in %ss", room.room_code, self.grace_seconds)

    async def _delayed_delete(self, code: str, delay: float):
        """Delete a room after a grace period unless someone rejoined it."""
        try:
            await asyncio.sleep(delay)
            self._pending_deletes.pop(code, None)
            self.registry.delete_if_empty(code)
        except asyncio.CancelledError:
            pass

    def _cancel_pending_delete(self, code: str):
        task = self._pending_deletes.pop(code, None)
        if task:
            task.cancel()
            logger.info("Pending deletion of room %s cancelled", code)

    def cancel_pending(self):
        for code in list(self._pending_deletes):
            self._cancel_pending_delete(code)
