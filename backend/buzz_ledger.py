from typing import Callable, List, Optional
import logging

from broadcast import BroadcastCoordinator
from errors import Locked, NotAPlayer, RoomNotFound
from rooms import BuzzEvent, RankedBuzz, Room, RoomRegistry, now_ms

logger = logging.getLogger(__name__)


class BuzzLedger:
    """Records buzzes in arrival order. Rank is position in the ledger."""

    def __init__(self, registry: RoomRegistry, broadcaster: BroadcastCoordinator,
                 clock: Callable[[], int] = now_ms):
        self.registry = registry
        self.broadcaster = broadcaster
        self.clock = clock

    async def record_buzz(self, connection_id: str, code: str) -> Optional[BuzzEvent]:
        """Append a buzz for this player, or return None if they already buzzed."""
        room = self.registry.get(code)
        if room is None:
            raise RoomNotFound()
        if room.locked:
            raise Locked()
        player = room.players.get(connection_id)
        if player is None:
            raise NotAPlayer()
        if room.has_buzzed(connection_id):
            return None

        timestamp = self.clock()
        if room.buzzes:
            # Wall clock may step backwards; ledger timestamps never do.
            timestamp = max(timestamp, room.buzzes[-1].timestamp)
        event = BuzzEvent(player_id=connection_id, name=player.name, timestamp=timestamp)
        room.buzzes.append(event)
        rank = len(room.buzzes)
        logger.info("Room %s: %s buzzed (#%d)", room.room_code, player.name, rank)

        self.broadcaster.publish_event(
            room.room_code, "buzzed",
            RankedBuzz(rank=rank, name=event.name, timestamp=event.timestamp).model_dump(),
        )
        self.broadcaster.publish_snapshot(room.room_code)
        return event

    def rankings(self, room: Room) -> List[RankedBuzz]:
        return room.ranked_buzzes()
