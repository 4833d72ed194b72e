"""Settings for the buzzer server, read from the environment (and .env)."""
import os
import logging
from dotenv import load_dotenv

load_dotenv()

# --- Server ---
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "3000"))
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "")

# --- WebSocket Security ---
WS_RATE_LIMIT_PER_SEC = 10  # max messages per second per client
MAX_WS_MESSAGE_SIZE = 4096  # bytes
WS_SEND_TIMEOUT = float(os.getenv("WS_SEND_TIMEOUT", "5"))  # seconds before a stalled client is dropped

# --- Rooms ---
MAX_NAME_LENGTH = 20
MAX_ROOM_CODE_LENGTH = 12
VALID_ROLES = ("HOST", "PLAYER")
# 0 = delete an empty room as soon as its last member leaves
EMPTY_ROOM_GRACE_SECONDS = float(os.getenv("EMPTY_ROOM_GRACE_SECONDS", "0"))

# --- Logging ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("LOG_FILE", "")  # empty = stdout only


def allowed_origins() -> list[str]:
    return [o.strip() for o in ALLOWED_ORIGINS.split(",") if o.strip()]


def setup_logging():
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if LOG_FILE:
        handlers.append(logging.FileHandler(LOG_FILE))
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )
