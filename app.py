from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from starlette.websockets import WebSocketState
from contextlib import asynccontextmanager
from routers.rooms import rooms_router
from broadcast import BroadcastRouter
from registry import RoomRegistry
from session import Session, SessionBinder
from relay import SignalingRelay
from errors import CoordinatorError
from schemas.rooms import ErrorEvent, parse_inbound
from constants import ROOM_STORE, CORS_ORIGINS
import asyncio
from logging_config import get_logger, setup_logging
import os

# Setup logging
log_level = os.getenv("LOG_LEVEL", "INFO")
log_file = os.getenv("LOG_FILE", None)
setup_logging(log_level=log_level, log_file=log_file)
logger = get_logger(__name__)


async def create_registry(store: str = ROOM_STORE):
    if store == "redis":
        from backend import RedisRoomRegistry
        return await RedisRoomRegistry.from_settings()
    if store != "memory":
        logger.warning(f"Unknown ROOM_STORE {store!r}, falling back to in-memory registry")
    return RoomRegistry()


@asynccontextmanager
async def lifespan(app: FastAPI):
    registry = await create_registry()
    router = BroadcastRouter()
    app.state.registry = registry
    app.state.router = router
    app.state.binder = SessionBinder(registry, router)
    app.state.relay = SignalingRelay(registry, router)
    logger.info(f"Room coordinator started with {type(registry).__name__}")
    yield
    logger.info("Room coordinator shutting down")


app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(rooms_router)

logger.info("FastAPI application initialized")


@app.get("/health")
async def health():
    return {"status": "ok"}


class WebSocketSender:
    """Serializes sends on one socket; broadcasts from other connections may overlap."""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self._lock = asyncio.Lock()

    async def __call__(self, payload: dict):
        if self.websocket.client_state != WebSocketState.CONNECTED:
            raise RuntimeError("WebSocket is not connected")
        async with self._lock:
            await self.websocket.send_json(payload)


# Flat message handlers; each consults the session instead of registering
# per-room callbacks.

async def handle_list_rooms(app, session: Session, message):
    await app.state.binder.send_room_list(session)


async def handle_create_room(app, session: Session, message):
    await app.state.binder.create_room(message.name, message.capacity, message.password, session=session)


async def handle_join_room(app, session: Session, message):
    await app.state.binder.join(session, message.room_id, message.peer_id, message.display_name, message.password)


async def handle_leave_room(app, session: Session, message):
    await app.state.binder.leave(session, message.room_id)


async def handle_kick_participant(app, session: Session, message):
    await app.state.binder.kick(session, message.target_peer_id)


async def handle_send_chat(app, session: Session, message):
    await app.state.relay.chat(session, message.text)


async def handle_signal(app, session: Session, message):
    await app.state.relay.signal(session, message.target_peer_id, message.data)


MESSAGE_HANDLERS = {
    "list_rooms": handle_list_rooms,
    "create_room": handle_create_room,
    "join_room": handle_join_room,
    "leave_room": handle_leave_room,
    "kick_participant": handle_kick_participant,
    "send_chat": handle_send_chat,
    "signal": handle_signal,
}


async def handle_message(app, session: Session, data: str):
    try:
        message = parse_inbound(data)
        logger.debug(f"Received {message.type} from connection {session.connection_id}")
        await MESSAGE_HANDLERS[message.type](app, session, message)
    except CoordinatorError as e:
        logger.debug(f"Rejected message from connection {session.connection_id}: {e.reason} ({e.detail})")
        await app.state.router.to_connection(session.connection_id, ErrorEvent(reason=e.reason, detail=e.detail))


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """Real-time channel for room presence, chat and signaling.

    The client receives the current room list right after connecting and
    then drives everything with JSON messages tagged by ``type``.
    """
    await websocket.accept()
    binder: SessionBinder = websocket.app.state.binder
    session = binder.connect(WebSocketSender(websocket))
    logger.info(f"WebSocket connection accepted: {session.connection_id}")

    try:
        await binder.send_room_list(session)
        message_count = 0
        while True:
            data = await websocket.receive_text()
            message_count += 1
            logger.debug(f"Received message #{message_count} from connection {session.connection_id}")
            await handle_message(websocket.app, session, data)
    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected normally for connection {session.connection_id}")
    except Exception as e:
        logger.error(f"WebSocket error for connection {session.connection_id}: {e}", exc_info=True)
    finally:
        await binder.disconnect(session)
        if websocket.client_state == WebSocketState.CONNECTED and websocket.application_state == WebSocketState.CONNECTED:
            try:
                await websocket.close()
            except RuntimeError as e:
                logger.debug(f"Error closing WebSocket: {e}")
