import asyncio
import hashlib
import hmac
import secrets
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from constants import DEFAULT_ROOM_CAPACITY, MAX_NAME_LENGTH, MAX_ROOM_CAPACITY, MIN_ROOM_CAPACITY
from errors import InvalidInput, RoomFull, RoomNotFound, WrongPassword
from logging_config import get_logger
from schemas.rooms import ParticipantInfo, RoomSummary

logger = get_logger(__name__)


def hash_password(password: str) -> str:
    salt = secrets.token_hex(8)
    digest = hashlib.sha256(f"{salt}:{password}".encode()).hexdigest()
    return f"{salt}${digest}"


def verify_password(password: Optional[str], password_hash: str) -> bool:
    if password is None:
        return False
    salt, _, expected = password_hash.partition("$")
    digest = hashlib.sha256(f"{salt}:{password}".encode()).hexdigest()
    return hmac.compare_digest(digest, expected)


def clamp_capacity(capacity: Optional[int], low: int = MIN_ROOM_CAPACITY, high: int = MAX_ROOM_CAPACITY) -> int:
    if capacity is None:
        capacity = DEFAULT_ROOM_CAPACITY
    return max(low, min(high, capacity))


def normalize_room_name(name) -> str:
    if not isinstance(name, str) or not name.strip():
        raise InvalidInput("Room name must not be empty")
    name = name.strip()
    if len(name) > MAX_NAME_LENGTH:
        raise InvalidInput(f"Room name is longer than {MAX_NAME_LENGTH} characters")
    return name


def generate_room_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class Participant:
    connection_id: str
    peer_id: str
    display_name: str = ""

    def info(self) -> ParticipantInfo:
        return ParticipantInfo(peer_id=self.peer_id, display_name=self.display_name)


@dataclass(frozen=True)
class RoomSnapshot:
    """Read-only copy of a room taken under the registry lock."""

    id: str
    name: str
    capacity: int
    has_password: bool
    participants: Tuple[Participant, ...]
    owner_peer_id: Optional[str]
    owner_connection_id: Optional[str]
    created_at: str

    @property
    def count(self) -> int:
        return len(self.participants)

    @property
    def is_full(self) -> bool:
        return self.count >= self.capacity

    def find_peer(self, peer_id: str) -> Optional[Participant]:
        for participant in self.participants:
            if participant.peer_id == peer_id:
                return participant
        return None

    def summary(self) -> RoomSummary:
        return RoomSummary(
            id=self.id,
            name=self.name,
            count=self.count,
            capacity=self.capacity,
            has_password=self.has_password,
        )


@dataclass
class Room:
    id: str
    name: str
    capacity: int
    password_hash: Optional[str] = None
    participants: List[Participant] = field(default_factory=list)
    owner_peer_id: Optional[str] = None
    owner_connection_id: Optional[str] = None
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def snapshot(self) -> RoomSnapshot:
        return RoomSnapshot(
            id=self.id,
            name=self.name,
            capacity=self.capacity,
            has_password=self.password_hash is not None,
            participants=tuple(self.participants),
            owner_peer_id=self.owner_peer_id,
            owner_connection_id=self.owner_connection_id,
            created_at=self.created_at,
        )


class RoomRegistry:
    """In-memory room catalog.

    Every read returns snapshots and every mutation runs as one critical
    section under a single lock, so joins, leaves and kicks on a room are
    linearizable. Nothing awaits I/O while the lock is held.
    """

    def __init__(self, min_capacity: int = MIN_ROOM_CAPACITY, max_capacity: int = MAX_ROOM_CAPACITY):
        self._rooms: Dict[str, Room] = {}
        self._lock = asyncio.Lock()
        self.min_capacity = min_capacity
        self.max_capacity = max_capacity
        logger.info(f"Initializing in-memory RoomRegistry (capacity {min_capacity}-{max_capacity})")

    async def list_rooms(self) -> List[RoomSummary]:
        async with self._lock:
            return [room.snapshot().summary() for room in self._rooms.values()]

    async def create_room(self, name: str, capacity: Optional[int] = None, password: Optional[str] = None) -> str:
        name = normalize_room_name(name)
        capacity = clamp_capacity(capacity, self.min_capacity, self.max_capacity)
        password_hash = hash_password(password) if password else None
        async with self._lock:
            room_id = generate_room_id()
            while room_id in self._rooms:
                room_id = generate_room_id()
            self._rooms[room_id] = Room(id=room_id, name=name, capacity=capacity, password_hash=password_hash)
        logger.info(f"Room {room_id} created: name={name}, capacity={capacity}, has_password={password_hash is not None}")
        return room_id

    async def get_room(self, room_id: str) -> RoomSnapshot:
        async with self._lock:
            room = self._rooms.get(room_id)
            if room is None:
                raise RoomNotFound(f"Room {room_id} not found")
            return room.snapshot()

    async def remove_room_if_empty(self, room_id: str) -> bool:
        async with self._lock:
            return self._remove_if_empty(room_id)

    async def admit(self, room_id: str, participant: Participant, password: Optional[str] = None) -> RoomSnapshot:
        """Append ``participant`` to the room or raise without touching it.

        Checks run in a fixed order: existence, password, capacity, then
        peer id uniqueness.
        """
        async with self._lock:
            room = self._rooms.get(room_id)
            if room is None:
                raise RoomNotFound(f"Room {room_id} not found")
            if room.password_hash is not None and not verify_password(password, room.password_hash):
                raise WrongPassword("Invalid password")
            if len(room.participants) >= room.capacity:
                raise RoomFull(f"Room is full ({len(room.participants)}/{room.capacity})")
            if any(p.peer_id == participant.peer_id for p in room.participants):
                raise InvalidInput(f"Peer id {participant.peer_id} is already in the room")
            room.participants.append(participant)
            if room.owner_connection_id is None:
                room.owner_peer_id = participant.peer_id
                room.owner_connection_id = participant.connection_id
            logger.debug(f"Admitted {participant.connection_id} to room {room_id} ({len(room.participants)}/{room.capacity})")
            return room.snapshot()

    async def discharge(self, room_id: str, connection_id: str) -> Optional[Tuple[Participant, RoomSnapshot]]:
        """Remove the participant bound to ``connection_id``.

        Returns the removed participant and the room as it looks afterwards,
        or ``None`` when there was nothing to remove. An emptied room is
        deleted in the same critical section.
        """
        async with self._lock:
            room = self._rooms.get(room_id)
            if room is None:
                return None
            for index, participant in enumerate(room.participants):
                if participant.connection_id == connection_id:
                    break
            else:
                return None
            del room.participants[index]
            snapshot = room.snapshot()
            self._remove_if_empty(room_id)
            logger.debug(f"Discharged {connection_id} from room {room_id} ({len(room.participants)}/{room.capacity})")
            return participant, snapshot

    def _remove_if_empty(self, room_id: str) -> bool:
        room = self._rooms.get(room_id)
        if room is None or room.participants:
            return False
        del self._rooms[room_id]
        logger.info(f"Room {room_id} is empty, removed")
        return True
