import logging

from broadcast import BroadcastCoordinator
from errors import Forbidden, RoomNotFound
from rooms import Room, RoomRegistry

logger = logging.getLogger(__name__)


class RoundController:
    """Host-only control of whether a room's buzzers are armed.

    LOCKED -> start -> UNLOCKED -> stop/reset -> LOCKED. Rooms start LOCKED.
    """

    def __init__(self, registry: RoomRegistry, broadcaster: BroadcastCoordinator):
        self.registry = registry
        self.broadcaster = broadcaster

    def _host_room(self, connection_id: str, code: str) -> Room:
        room = self.registry.get(code)
        if room is None:
            raise RoomNotFound()
        if room.host_id is None or room.host_id != connection_id:
            raise Forbidden()
        return room

    async def start(self, connection_id: str, code: str) -> Room:
        room = self._host_room(connection_id, code)
        room.locked = False
        logger.info("Room %s unlocked by host", room.room_code)
        self.broadcaster.publish_snapshot(room.room_code)
        return room

    async def stop(self, connection_id: str, code: str) -> Room:
        room = self._host_room(connection_id, code)
        room.locked = True
        logger.info("Room %s locked by host", room.room_code)
        self.broadcaster.publish_snapshot(room.room_code)
        return room

    async def reset(self, connection_id: str, code: str) -> Room:
        room = self._host_room(connection_id, code)
        room.buzzes = []
        room.locked = True
        logger.info("Room %s reset by host", room.room_code)
        self.broadcaster.publish_event(room.room_code, "reset_buzzer")
        self.broadcaster.publish_snapshot(room.room_code)
        return room
