from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, List, Optional
import time
import logging

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


def normalize_room_code(code: str) -> str:
    return code.strip().upper()


class PlayerInfo(BaseModel):
    name: str
    joined_at: int


class BuzzEvent(BaseModel):
    """A recorded buzz. Never mutated after it is appended to a ledger."""
    model_config = ConfigDict(frozen=True)

    player_id: str = Field(exclude=True)
    name: str
    timestamp: int


class RankedBuzz(BaseModel):
    rank: int
    name: str
    timestamp: int


class RoomSnapshot(BaseModel):
    room_code: str
    locked: bool
    buzzes: List[RankedBuzz]
    players: List[str]
    has_host: bool


class Room:
    def __init__(self, room_code: str):
        self.room_code = room_code
        self.host_id: Optional[str] = None
        self.players: Dict[str, PlayerInfo] = {}  # connection_id -> PlayerInfo
        self.buzzes: List[BuzzEvent] = []  # insertion order is rank order
        self.locked = True

    def is_empty(self) -> bool:
        return self.host_id is None and not self.players

    def has_buzzed(self, connection_id: str) -> bool:
        return any(b.player_id == connection_id for b in self.buzzes)

    def ranked_buzzes(self) -> List[RankedBuzz]:
        return [
            RankedBuzz(rank=i, name=b.name, timestamp=b.timestamp)
            for i, b in enumerate(self.buzzes, start=1)
        ]

    def snapshot(self) -> RoomSnapshot:
        return RoomSnapshot(
            room_code=self.room_code,
            locked=self.locked,
            buzzes=self.ranked_buzzes(),
            players=[p.name for p in self.players.values()],
            has_host=self.host_id is not None,
        )


class RoomRegistry:
    """Process-wide table of live rooms, keyed by canonical room code."""

    def __init__(self):
        self.rooms: Dict[str, Room] = {}

    def __len__(self) -> int:
        return len(self.rooms)

    def __contains__(self, code: str) -> bool:
        return normalize_room_code(code) in self.rooms

    def get(self, code: str) -> Optional[Room]:
        return self.rooms.get(normalize_room_code(code))

    def get_or_create(self, code: str) -> Room:
        room_code = normalize_room_code(code)
        room = self.rooms.get(room_code)
        if room is None:
            room = Room(room_code)
            self.rooms[room_code] = room
            logger.info("Created room %s", room_code)
        return room

    def delete_if_empty(self, code: str) -> bool:
        room_code = normalize_room_code(code)
        room = self.rooms.get(room_code)
        if room is None or not room.is_empty():
            return False
        del self.rooms[room_code]
        logger.info("Room %s deleted (empty)", room_code)
        return True

    def clear(self):
        self.rooms.clear()
