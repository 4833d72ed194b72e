"""Validation models for inbound websocket payloads."""
from pydantic import BaseModel, ValidationError, field_validator
from typing import Type, TypeVar
import re

import config
from errors import InvalidRequest
from rooms import normalize_room_code

Model = TypeVar("Model", bound=BaseModel)


def _clean_room_code(v: str) -> str:
    v = normalize_room_code(v)
    if not v or len(v) > config.MAX_ROOM_CODE_LENGTH:
        raise ValueError(f'Room code must be 1-{config.MAX_ROOM_CODE_LENGTH} characters')
    return v


class RoomRequest(BaseModel):
    room: str

    @field_validator('room')
    @classmethod
    def validate_room(cls, v: str) -> str:
        return _clean_room_code(v)


class JoinRoomRequest(BaseModel):
    room: str
    name: str
    role: str

    @field_validator('room')
    @classmethod
    def validate_room(cls, v: str) -> str:
        return _clean_room_code(v)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        # Strip HTML tags and control characters
        v = re.sub(r'<[^>]+>', '', v)
        v = re.sub(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]', '', v).strip()
        if not v or len(v) > config.MAX_NAME_LENGTH:
            raise ValueError(f'Name must be 1-{config.MAX_NAME_LENGTH} characters')
        return v

    @field_validator('role')
    @classmethod
    def validate_role(cls, v: str) -> str:
        v = v.strip().upper()
        if v not in config.VALID_ROLES:
            raise ValueError(f'Role must be one of: {", ".join(config.VALID_ROLES)}')
        return v


def parse(model: Type[Model], payload: dict) -> Model:
    """Validate a payload, turning pydantic errors into InvalidRequest."""
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        err = exc.errors()[0]
        field = ".".join(str(p) for p in err["loc"])
        msg = err["msg"].removeprefix("Value error, ")
        raise InvalidRequest(f"{field}: {msg}" if field else msg) from exc
