"""Unit tests for explicit room membership."""

from __future__ import annotations

import pytest

from app.monitoring.metrics import realtime_rooms
from relay.realtime import RoomMembershipTracker


@pytest.mark.anyio("asyncio")
async def test_join_and_leave_track_both_directions(make_connection):
    tracker = RoomMembershipTracker()
    alice = make_connection("1", "alice")

    assert await tracker.join("general", alice) is True
    assert await tracker.join("general", alice) is False
    await tracker.join("random", alice)

    assert await tracker.rooms_for(alice) == {"general", "random"}
    assert await tracker.members("general") == [alice]
    assert realtime_rooms.value() == 2

    assert await tracker.leave("general", alice) is True
    assert await tracker.members("general") == []
    assert await tracker.rooms_for(alice) == {"random"}
    assert realtime_rooms.value() == 1


@pytest.mark.anyio("asyncio")
async def test_leave_unknown_room_is_noop(make_connection):
    tracker = RoomMembershipTracker()
    alice = make_connection("1", "alice")

    assert await tracker.leave("nowhere", alice) is False
    assert await tracker.broadcast("nowhere", "user_left", {}) == 0


@pytest.mark.anyio("asyncio")
async def test_drop_removes_connection_everywhere(make_connection):
    tracker = RoomMembershipTracker()
    alice = make_connection("1", "alice")
    bob = make_connection("2", "bob")
    await tracker.join("r1", alice)
    await tracker.join("r2", alice)
    await tracker.join("r2", bob)

    left = await tracker.drop(alice)

    assert left == ["r1", "r2"]
    assert await tracker.members("r1") == []
    assert await tracker.members("r2") == [bob]
    assert await tracker.rooms_for(alice) == set()


@pytest.mark.anyio("asyncio")
async def test_broadcast_reaches_members_only(make_connection):
    tracker = RoomMembershipTracker()
    alice = make_connection("1", "alice")
    bob = make_connection("2", "bob")
    carol = make_connection("3", "carol")
    await tracker.join("r1", alice)
    await tracker.join("r1", bob)
    await tracker.join("r2", carol)

    delivered = await tracker.broadcast("r1", "new_message", {"message": "hi"}, exclude={bob})

    assert delivered == 1
    assert alice.sink.sent == [("new_message", {"message": "hi"})]
    assert bob.sink.sent == []
    assert carol.sink.sent == []


@pytest.mark.anyio("asyncio")
async def test_same_user_connections_are_distinct_members(make_connection):
    tracker = RoomMembershipTracker()
    first = make_connection("1", "alice")
    second = make_connection("1", "alice")

    await tracker.join("r1", first)
    await tracker.join("r1", second)

    assert len(await tracker.members("r1")) == 2
