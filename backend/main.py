from fastapi import FastAPI, WebSocket, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import uvicorn
import logging

import config
config.setup_logging()

from socket_manager import socket_manager

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting buzzer server")
    yield
    socket_manager.sessions.cancel_pending()
    logger.info("Shutting down buzzer server")


app = FastAPI(title="Buzzer Rooms", lifespan=lifespan)


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await socket_manager.connect(websocket)


@app.get("/room/{room_code}")
async def get_room(room_code: str):
    """Read-only view of a room, the same snapshot members receive."""
    room = socket_manager.registry.get(room_code)
    if room is None:
        raise HTTPException(status_code=404, detail="Room not found")
    return room.snapshot().model_dump()


# Configure CORS
origins = config.allowed_origins()
socket_manager.allowed_origins = list(origins)
if not origins:
    origins = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=False,
    allow_methods=["GET"],
    allow_headers=["Content-Type"],
)


@app.get("/")
async def root():
    return {"message": "Buzzer server is running"}


@app.get("/health")
async def health():
    return {"status": "healthy", "rooms": len(socket_manager.registry)}


if __name__ == "__main__":
    uvicorn.run("main:app", host=config.HOST, port=config.PORT)
