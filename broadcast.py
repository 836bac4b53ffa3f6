import asyncio
from typing import Any, Awaitable, Callable, Dict, Iterable, Union

from pydantic import BaseModel

from logging_config import get_logger
from registry import RoomSnapshot

logger = get_logger(__name__)

SendCallable = Callable[[dict], Awaitable[Any]]
Event = Union[BaseModel, dict]


class BroadcastRouter:
    """Fan-out of events to connections.

    Delivery is fire-and-forget: a recipient that fails is logged and skipped
    so one slow or dead socket never holds up the others. Room audiences are
    taken from a registry snapshot, not looked up at send time.
    """

    def __init__(self):
        self._connections: Dict[str, SendCallable] = {}

    def register(self, connection_id: str, send: SendCallable):
        self._connections[connection_id] = send
        logger.debug(f"Registered connection {connection_id} ({len(self._connections)} connected)")

    def unregister(self, connection_id: str):
        if self._connections.pop(connection_id, None) is not None:
            logger.debug(f"Unregistered connection {connection_id} ({len(self._connections)} connected)")

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def to_connection(self, connection_id: str, event: Event) -> bool:
        send = self._connections.get(connection_id)
        if send is None:
            logger.debug(f"Dropping {_event_type(event)} for unknown connection {connection_id}")
            return False
        return await self._send(connection_id, send, _payload(event))

    async def to_room(self, room: RoomSnapshot, event: Event):
        await self._deliver((p.connection_id for p in room.participants), event)

    async def to_room_except(self, room: RoomSnapshot, connection_id: str, event: Event):
        await self._deliver((p.connection_id for p in room.participants if p.connection_id != connection_id), event)

    async def to_all(self, event: Event):
        await self._deliver(list(self._connections), event)

    async def _deliver(self, connection_ids: Iterable[str], event: Event):
        payload = _payload(event)
        targets = [(cid, self._connections.get(cid)) for cid in connection_ids]
        send_tasks = [self._send(cid, send, payload) for cid, send in targets if send is not None]
        if send_tasks:
            await asyncio.gather(*send_tasks, return_exceptions=True)
            logger.debug(f"Delivered {payload.get('type')} to {len(send_tasks)} connection(s)")

    async def _send(self, connection_id: str, send: SendCallable, payload: dict) -> bool:
        try:
            await send(payload)
            return True
        except Exception as e:
            logger.warning(f"Error sending {payload.get('type')} to connection {connection_id}: {e}")
            return False


def _payload(event: Event) -> dict:
    if isinstance(event, BaseModel):
        return event.model_dump(mode="json")
    return dict(event)


def _event_type(event: Event) -> str:
    return _payload(event).get("type", "unknown")
