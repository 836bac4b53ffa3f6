import uuid
from enum import Enum
from typing import Dict, List, Optional

from broadcast import BroadcastRouter, SendCallable
from constants import MAX_NAME_LENGTH, MAX_PEER_ID_LENGTH
from errors import CoordinatorError, InvalidInput, RoomNotFound
from logging_config import get_logger
from registry import Participant
from schemas.rooms import (
    ExistingParticipantsEvent,
    KickedEvent,
    ParticipantInfo,
    ParticipantJoinedEvent,
    ParticipantLeftEvent,
    RoomCreatedEvent,
    RoomListEvent,
)

logger = get_logger(__name__)


class SessionState(str, Enum):
    CONNECTED = "connected"
    IN_ROOM = "in_room"
    DISCONNECTED = "disconnected"


class Session:
    """Per-connection state: which room this connection sits in, and as whom."""

    def __init__(self, connection_id: str):
        self.connection_id = connection_id
        self.state = SessionState.CONNECTED
        self.room_id: Optional[str] = None
        self.peer_id: Optional[str] = None
        self.display_name: str = ""

    def __repr__(self):
        return f"Session({self.connection_id}, {self.state.value}, room={self.room_id})"

    def _bind(self, room_id: str, participant: Participant):
        self.state = SessionState.IN_ROOM
        self.room_id = room_id
        self.peer_id = participant.peer_id
        self.display_name = participant.display_name

    def _unbind(self) -> Optional[str]:
        room_id = self.room_id
        self.room_id = None
        self.peer_id = None
        self.display_name = ""
        if self.state is SessionState.IN_ROOM:
            self.state = SessionState.CONNECTED
        return room_id


class SessionBinder:
    """The only path through which participants enter or leave rooms.

    Every operation commits its registry change first and only then notifies
    the affected connections, and it awaits those notifications before
    returning.
    """

    def __init__(self, registry, router: BroadcastRouter):
        self.registry = registry
        self.router = router
        self._sessions: Dict[str, Session] = {}

    def connect(self, send: SendCallable, connection_id: Optional[str] = None) -> Session:
        connection_id = connection_id or str(uuid.uuid4())
        session = Session(connection_id)
        self._sessions[connection_id] = session
        self.router.register(connection_id, send)
        logger.info(f"Connection {connection_id} opened")
        return session

    def get_session(self, connection_id: str) -> Optional[Session]:
        return self._sessions.get(connection_id)

    async def create_room(self, name: str, capacity: Optional[int] = None, password: Optional[str] = None,
                          session: Optional[Session] = None) -> str:
        room_id = await self.registry.create_room(name, capacity, password)
        if session is not None:
            await self.router.to_connection(session.connection_id, RoomCreatedEvent(room_id=room_id))
        await self.broadcast_room_list()
        return room_id

    async def join(self, session: Session, room_id: str, peer_id: str, display_name: str = "",
                   password: Optional[str] = None) -> List[ParticipantInfo]:
        if session.state is SessionState.DISCONNECTED:
            raise InvalidInput("Connection is closed")
        if session.state is SessionState.IN_ROOM:
            raise InvalidInput(f"Already in room {session.room_id}")
        peer_id = peer_id.strip()
        display_name = display_name.strip()
        if not peer_id:
            raise InvalidInput("peer_id must not be empty")
        if len(peer_id) > MAX_PEER_ID_LENGTH:
            raise InvalidInput(f"peer_id is longer than {MAX_PEER_ID_LENGTH} characters")
        if len(display_name) > MAX_NAME_LENGTH:
            raise InvalidInput(f"display_name is longer than {MAX_NAME_LENGTH} characters")

        participant = Participant(session.connection_id, peer_id, display_name)
        try:
            room = await self.registry.admit(room_id, participant, password)
        except CoordinatorError as e:
            logger.warning(f"Join rejected for {session.connection_id} on room {room_id}: {e.reason}")
            raise

        if session.state is SessionState.DISCONNECTED:
            # The channel closed while the join was in flight.
            logger.info(f"Connection {session.connection_id} closed during join, discharging from room {room_id}")
            await self.registry.discharge(room_id, session.connection_id)
            await self.broadcast_room_list()
            return []

        session._bind(room_id, participant)
        others = [p.info() for p in room.participants if p.connection_id != session.connection_id]
        logger.info(f"Peer {peer_id} ({participant.display_name}) joined room {room_id} ({room.count}/{room.capacity})")

        await self.router.to_connection(
            session.connection_id, ExistingParticipantsEvent(room_id=room_id, participants=others)
        )
        await self.router.to_room_except(
            room, session.connection_id,
            ParticipantJoinedEvent(peer_id=peer_id, display_name=participant.display_name),
        )
        await self.broadcast_room_list()
        return others

    async def leave(self, session: Session, room_id: Optional[str] = None) -> bool:
        """Take the session out of its room. Calling it again is a no-op."""
        if session.state is not SessionState.IN_ROOM:
            return False
        if room_id is not None and room_id != session.room_id:
            logger.debug(f"Ignoring leave for room {room_id}, {session.connection_id} is in {session.room_id}")
            return False
        return await self._release(session.connection_id, session._unbind())

    async def kick(self, session: Session, target_peer_id: str) -> bool:
        """Remove ``target_peer_id`` if ``session`` is the room owner.

        Requests from anyone else are dropped without a reply.
        """
        if session.state is not SessionState.IN_ROOM:
            return False
        try:
            room = await self.registry.get_room(session.room_id)
        except RoomNotFound:
            return False
        if room.owner_connection_id != session.connection_id:
            logger.warning(f"Unauthorized kick of {target_peer_id} by {session.peer_id} in room {room.id}, ignored")
            return False
        target = room.find_peer(target_peer_id)
        if target is None:
            logger.debug(f"Kick target {target_peer_id} not in room {room.id}")
            return False

        target_session = self._sessions.get(target.connection_id)
        if target_session is not None and target_session.room_id == room.id:
            target_session._unbind()
        result = await self.registry.discharge(room.id, target.connection_id)
        if result is None:
            return False
        _, remaining = result
        logger.info(f"Peer {target_peer_id} kicked from room {room.id} by {session.peer_id}")

        await self.router.to_connection(target.connection_id, KickedEvent(room_id=room.id))
        await self.router.to_room_except(remaining, target.connection_id, ParticipantLeftEvent(peer_id=target_peer_id))
        await self.broadcast_room_list()
        return True

    async def disconnect(self, session: Session):
        """Handle the channel closing. Runs its cleanup once per connection."""
        if session.state is SessionState.DISCONNECTED:
            return
        in_room = session.state is SessionState.IN_ROOM
        session.state = SessionState.DISCONNECTED
        self.router.unregister(session.connection_id)
        if in_room:
            await self._release(session.connection_id, session._unbind())
        self._sessions.pop(session.connection_id, None)
        logger.info(f"Connection {session.connection_id} closed")

    async def broadcast_room_list(self):
        rooms = await self.registry.list_rooms()
        await self.router.to_all(RoomListEvent(rooms=rooms))

    async def send_room_list(self, session: Session):
        rooms = await self.registry.list_rooms()
        await self.router.to_connection(session.connection_id, RoomListEvent(rooms=rooms))

    async def _release(self, connection_id: str, room_id: Optional[str]) -> bool:
        if room_id is None:
            return False
        result = await self.registry.discharge(room_id, connection_id)
        if result is None:
            return False
        participant, remaining = result
        logger.info(f"Peer {participant.peer_id} left room {room_id} ({remaining.count}/{remaining.capacity})")
        await self.router.to_room_except(remaining, participant.connection_id, ParticipantLeftEvent(peer_id=participant.peer_id))
        await self.broadcast_room_list()
        return True
