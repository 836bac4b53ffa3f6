import pytest

from broadcast import BroadcastRouter
from registry import RoomRegistry
from relay import SignalingRelay
from session import SessionBinder


class Outbox:
    """Collects every payload delivered to each fake connection."""

    def __init__(self):
        self.events = {}

    def sender(self, connection_id):
        self.events.setdefault(connection_id, [])

        async def send(payload):
            self.events[connection_id].append(payload)
        return send

    def of_type(self, connection_id, event_type):
        return [e for e in self.events.get(connection_id, []) if e["type"] == event_type]

    def clear(self):
        for events in self.events.values():
            events.clear()


class Coordinator:
    def __init__(self, registry=None):
        self.registry = registry or RoomRegistry()
        self.router = BroadcastRouter()
        self.binder = SessionBinder(self.registry, self.router)
        self.relay = SignalingRelay(self.registry, self.router)
        self.outbox = Outbox()

    def connect(self, connection_id):
        return self.binder.connect(self.outbox.sender(connection_id), connection_id=connection_id)


@pytest.fixture
def make_coordinator():
    # Registries own an asyncio.Lock, so build them inside the running loop.
    return Coordinator
