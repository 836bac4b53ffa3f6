import redis.asyncio as redis
import json
from datetime import datetime, timezone
from typing import List, Optional, Tuple
from constants import REDIS_HOST, REDIS_PORT, REDIS_PASSWORD, MIN_ROOM_CAPACITY, MAX_ROOM_CAPACITY
from redis_keys import REDIS_META_KEY, REDIS_PARTICIPANTS_KEY, REDIS_ROOM_INDEX_KEY
from errors import InvalidInput, RoomFull, RoomNotFound, WrongPassword
from registry import (
    Participant,
    RoomSnapshot,
    clamp_capacity,
    generate_room_id,
    hash_password,
    normalize_room_name,
    verify_password,
)
from schemas.rooms import RoomSummary
from logging_config import get_logger

logger = get_logger(__name__)


async def connect_redis(host: str = REDIS_HOST, port: int = REDIS_PORT, password: Optional[str] = REDIS_PASSWORD):
    try:
        client = redis.Redis(host=host, port=port, password=password, decode_responses=True)
        # Test connection
        await client.ping()
        logger.info(f"Redis client connected successfully to {host}:{port}")
        return client
    except Exception as e:
        logger.error(f"Failed to connect to Redis at {host}:{port}: {e}", exc_info=True)
        raise


def _encode_participant(participant: Participant) -> str:
    return json.dumps({
        "connection_id": participant.connection_id,
        "peer_id": participant.peer_id,
        "display_name": participant.display_name,
    }, sort_keys=True)


def _decode_participant(raw: str) -> Participant:
    data = json.loads(raw)
    return Participant(data["connection_id"], data["peer_id"], data.get("display_name", ""))


def _snapshot(meta: dict, participants: List[Participant]) -> RoomSnapshot:
    return RoomSnapshot(
        id=meta["id"],
        name=meta["name"],
        capacity=int(meta["capacity"]),
        has_password=bool(meta.get("password_hash")),
        participants=tuple(participants),
        owner_peer_id=meta.get("owner_peer_id") or None,
        owner_connection_id=meta.get("owner_connection_id") or None,
        created_at=meta.get("created_at", ""),
    )


class RedisRoomRegistry:
    """Room catalog kept in Redis, with the same contract as ``RoomRegistry``.

    Joins and leaves run as WATCH/MULTI transactions on the room's keys, so
    capacity holds even with several coordinator processes sharing one Redis.
    """

    def __init__(self, redis_client, min_capacity: int = MIN_ROOM_CAPACITY, max_capacity: int = MAX_ROOM_CAPACITY):
        self.redis_client = redis_client
        self.min_capacity = min_capacity
        self.max_capacity = max_capacity
        logger.info("Initializing RedisRoomRegistry")

    @classmethod
    async def from_settings(cls):
        return cls(await connect_redis())

    async def list_rooms(self) -> List[RoomSummary]:
        room_ids = await self.redis_client.smembers(REDIS_ROOM_INDEX_KEY)
        rooms = []
        for room_id in room_ids:
            pipe = self.redis_client.pipeline()
            pipe.hgetall(REDIS_META_KEY.format(slug=room_id))
            pipe.llen(REDIS_PARTICIPANTS_KEY.format(slug=room_id))
            meta, count = await pipe.execute()
            if not meta:
                # Index entry outlived its room
                await self.redis_client.srem(REDIS_ROOM_INDEX_KEY, room_id)
                continue
            rooms.append((meta.get("created_at", ""), RoomSummary(
                id=meta["id"],
                name=meta["name"],
                count=count,
                capacity=int(meta["capacity"]),
                has_password=bool(meta.get("password_hash")),
            )))
        rooms.sort(key=lambda item: item[0])
        logger.debug(f"Listed {len(rooms)} rooms")
        return [summary for _, summary in rooms]

    async def create_room(self, name: str, capacity: Optional[int] = None, password: Optional[str] = None) -> str:
        name = normalize_room_name(name)
        capacity = clamp_capacity(capacity, self.min_capacity, self.max_capacity)
        room_id = generate_room_id()
        key = REDIS_META_KEY.format(slug=room_id)
        room_data = {
            "id": room_id,
            "name": name,
            "capacity": str(capacity),
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        if password:
            room_data["password_hash"] = hash_password(password)
        pipe = self.redis_client.pipeline()
        pipe.hset(key, mapping=room_data)
        pipe.sadd(REDIS_ROOM_INDEX_KEY, room_id)
        await pipe.execute()
        logger.info(f"Room {room_id} created: name={name}, capacity={capacity}, has_password={bool(password)}")
        return room_id

    async def get_room(self, room_id: str) -> RoomSnapshot:
        pipe = self.redis_client.pipeline()
        pipe.hgetall(REDIS_META_KEY.format(slug=room_id))
        pipe.lrange(REDIS_PARTICIPANTS_KEY.format(slug=room_id), 0, -1)
        meta, raw_participants = await pipe.execute()
        if not meta:
            logger.debug(f"Room {room_id} not found in Redis")
            raise RoomNotFound(f"Room {room_id} not found")
        return _snapshot(meta, [_decode_participant(raw) for raw in raw_participants])

    async def remove_room_if_empty(self, room_id: str) -> bool:
        meta_key = REDIS_META_KEY.format(slug=room_id)
        users_key = REDIS_PARTICIPANTS_KEY.format(slug=room_id)

        async def remove(pipe):
            if not await pipe.exists(meta_key) or await pipe.llen(users_key):
                return False
            pipe.multi()
            self._queue_delete(pipe, room_id)
            return True

        removed = await self.redis_client.transaction(remove, meta_key, users_key, value_from_callable=True)
        if removed:
            logger.info(f"Room {room_id} is empty, removed")
        return removed

    async def admit(self, room_id: str, participant: Participant, password: Optional[str] = None) -> RoomSnapshot:
        meta_key = REDIS_META_KEY.format(slug=room_id)
        users_key = REDIS_PARTICIPANTS_KEY.format(slug=room_id)

        async def add(pipe):
            meta = await pipe.hgetall(meta_key)
            if not meta:
                raise RoomNotFound(f"Room {room_id} not found")
            password_hash = meta.get("password_hash")
            if password_hash and not verify_password(password, password_hash):
                raise WrongPassword("Invalid password")
            participants = [_decode_participant(raw) for raw in await pipe.lrange(users_key, 0, -1)]
            capacity = int(meta["capacity"])
            if len(participants) >= capacity:
                raise RoomFull(f"Room is full ({len(participants)}/{capacity})")
            if any(p.peer_id == participant.peer_id for p in participants):
                raise InvalidInput(f"Peer id {participant.peer_id} is already in the room")
            pipe.multi()
            pipe.rpush(users_key, _encode_participant(participant))
            if not meta.get("owner_connection_id"):
                owner = {"owner_peer_id": participant.peer_id, "owner_connection_id": participant.connection_id}
                pipe.hset(meta_key, mapping=owner)
                meta.update(owner)
            return _snapshot(meta, participants + [participant])

        room = await self.redis_client.transaction(add, meta_key, users_key, value_from_callable=True)
        logger.debug(f"Admitted {participant.connection_id} to room {room_id} ({room.count}/{room.capacity})")
        return room

    async def discharge(self, room_id: str, connection_id: str) -> Optional[Tuple[Participant, RoomSnapshot]]:
        meta_key = REDIS_META_KEY.format(slug=room_id)
        users_key = REDIS_PARTICIPANTS_KEY.format(slug=room_id)

        async def remove(pipe):
            meta = await pipe.hgetall(meta_key)
            if not meta:
                return None
            raw_participants = await pipe.lrange(users_key, 0, -1)
            participants = [_decode_participant(raw) for raw in raw_participants]
            for raw, participant in zip(raw_participants, participants):
                if participant.connection_id == connection_id:
                    break
            else:
                return None
            remaining = [p for p in participants if p.connection_id != connection_id]
            pipe.multi()
            pipe.lrem(users_key, 1, raw)
            if not remaining:
                self._queue_delete(pipe, room_id)
            return participant, _snapshot(meta, remaining)

        result = await self.redis_client.transaction(remove, meta_key, users_key, value_from_callable=True)
        if result is not None:
            _, room = result
            logger.debug(f"Discharged {connection_id} from room {room_id} ({room.count}/{room.capacity})")
            if not room.participants:
                logger.info(f"Room {room_id} is empty, removed")
        return result

    def _queue_delete(self, pipe, room_id: str):
        pipe.delete(REDIS_META_KEY.format(slug=room_id))
        pipe.delete(REDIS_PARTICIPANTS_KEY.format(slug=room_id))
        pipe.srem(REDIS_ROOM_INDEX_KEY, room_id)
