from datetime import datetime, timezone
from typing import Any

from broadcast import BroadcastRouter
from constants import MAX_CHAT_LENGTH
from errors import InvalidInput
from logging_config import get_logger
from registry import RoomSnapshot
from schemas.rooms import ChatMessageEvent, SignalEvent
from session import Session, SessionState

logger = get_logger(__name__)


class SignalingRelay:
    """Pass-through for chat text and peer-to-peer call setup payloads.

    Nothing is stored and payloads are not inspected beyond basic shape.
    """

    def __init__(self, registry, router: BroadcastRouter, max_chat_length: int = MAX_CHAT_LENGTH):
        self.registry = registry
        self.router = router
        self.max_chat_length = max_chat_length

    async def chat(self, session: Session, text: str) -> ChatMessageEvent:
        if not isinstance(text, str) or not text.strip():
            raise InvalidInput("Chat text must not be empty")
        if len(text) > self.max_chat_length:
            raise InvalidInput(f"Chat text is longer than {self.max_chat_length} characters")
        room = await self._current_room(session)

        event = ChatMessageEvent(
            text=text,
            sender_peer_id=session.peer_id,
            sender_name=session.display_name,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )
        await self.router.to_room(room, event)
        logger.debug(f"Chat from {session.peer_id} relayed to {room.count} participant(s) in room {room.id}")
        return event

    async def signal(self, session: Session, target_peer_id: str, data: Any) -> bool:
        room = await self._current_room(session)
        target = room.find_peer(target_peer_id)
        if target is None or target.connection_id == session.connection_id:
            logger.debug(f"Dropping signal from {session.peer_id} to unknown peer {target_peer_id} in room {room.id}")
            return False
        return await self.router.to_connection(
            target.connection_id, SignalEvent(from_peer_id=session.peer_id, data=data)
        )

    async def _current_room(self, session: Session) -> RoomSnapshot:
        if session.state is not SessionState.IN_ROOM:
            raise InvalidInput("Not in a room")
        room = await self.registry.get_room(session.room_id)
        if room.find_peer(session.peer_id) is None:
            raise InvalidInput("Not in a room")
        return room
