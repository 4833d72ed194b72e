"""Errors reported back to the connection that sent a rejected action."""


class BuzzerError(Exception):
    code = "error"
    default_message = "Request failed"

    def __init__(self, message: str = ""):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_message(self) -> dict:
        return {"type": "error", "message": self.message, "code": self.code}


class InvalidRequest(BuzzerError):
    code = "invalid_request"
    default_message = "Invalid request"


class RoomNotFound(BuzzerError):
    code = "room_not_found"
    default_message = "Room not found."


class Locked(BuzzerError):
    code = "locked"
    default_message = "Buzzers are locked!"


class NotAPlayer(BuzzerError):
    code = "not_a_player"
    default_message = "You are not a player in this room."


class Forbidden(BuzzerError):
    code = "forbidden"
    default_message = "Only the host can do that."


class RateLimited(BuzzerError):
    code = "rate_limited"
    default_message = "Too many messages"
