import asyncio

import pytest

from errors import InvalidInput


def run(coro):
    return asyncio.run(coro)


async def two_rooms(c):
    a, b, z = c.connect("a"), c.connect("b"), c.connect("z")
    room_id = await c.binder.create_room("one", 4)
    other_id = await c.binder.create_room("two", 4)
    await c.binder.join(a, room_id, "peer-a", "Alice")
    await c.binder.join(b, room_id, "peer-b", "Bob")
    await c.binder.join(z, other_id, "peer-z", "Zed")
    c.outbox.clear()
    return a, b, z


def test_chat_reaches_whole_room_only(make_coordinator):
    async def scenario():
        c = make_coordinator()
        a, b, z = await two_rooms(c)
        event = await c.relay.chat(a, "hello there")
        return c, event

    c, event = run(scenario())
    assert event.sender_peer_id == "peer-a"
    assert event.sender_name == "Alice"
    for connection_id in ("a", "b"):
        [message] = c.outbox.of_type(connection_id, "chat_message")
        assert message["text"] == "hello there"
        assert message["sender_peer_id"] == "peer-a"
        assert message["timestamp"]
    assert c.outbox.of_type("z", "chat_message") == []


@pytest.mark.parametrize("text", ["", "   ", "x" * 2001])
def test_chat_rejects_bad_text(make_coordinator, text):
    async def scenario():
        c = make_coordinator()
        a, _, _ = await two_rooms(c)
        with pytest.raises(InvalidInput):
            await c.relay.chat(a, text)
        return c

    c = run(scenario())
    assert c.outbox.of_type("b", "chat_message") == []


def test_chat_outside_room_is_rejected(make_coordinator):
    async def scenario():
        c = make_coordinator()
        loner = c.connect("l")
        with pytest.raises(InvalidInput):
            await c.relay.chat(loner, "anyone?")

    run(scenario())


def test_signal_goes_to_target_only(make_coordinator):
    async def scenario():
        c = make_coordinator()
        a, b, z = await two_rooms(c)
        delivered = await c.relay.signal(a, "peer-b", {"sdp": "offer"})
        cross_room = await c.relay.signal(a, "peer-z", {"sdp": "offer"})
        to_self = await c.relay.signal(a, "peer-a", {"sdp": "offer"})
        return c, delivered, cross_room, to_self

    c, delivered, cross_room, to_self = run(scenario())
    assert (delivered, cross_room, to_self) == (True, False, False)
    assert c.outbox.of_type("b", "signal") == [{"type": "signal", "from_peer_id": "peer-a", "data": {"sdp": "offer"}}]
    assert c.outbox.of_type("z", "signal") == []
    assert c.outbox.of_type("a", "signal") == []
