"""Tests covering handshake authentication and presence transitions."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from app.monitoring.metrics import realtime_auth_failures_total
from relay.realtime import (
    InvalidCredential,
    MissingCredential,
    RealtimeHub,
    UserIdentity,
    extract_credential,
)


def _identity(user_id: str, username: str, *, is_active: bool = True) -> UserIdentity:
    return UserIdentity(id=user_id, username=username, profile={}, is_active=is_active)


def test_extract_credential_prefers_query_parameter():
    token = extract_credential({"token": "abc"}, {"authorization": "Bearer other"})

    assert token == "abc"


def test_extract_credential_falls_back_to_bearer_header():
    assert extract_credential({}, {"authorization": "Bearer xyz "}) == "xyz"
    assert extract_credential({}, {"authorization": "Basic xyz"}) is None
    assert extract_credential({"token": ""}, {}) is None


@pytest.mark.anyio("asyncio")
async def test_authenticate_returns_identity(hub, verifier):
    verifier.identities["good"] = _identity("1", "alice")

    identity = await hub.lifecycle.authenticate("good")

    assert identity.id == "1"
    assert identity.username == "alice"


@pytest.mark.anyio("asyncio")
async def test_authenticate_without_token(hub):
    with pytest.raises(MissingCredential) as excinfo:
        await hub.lifecycle.authenticate(None)

    assert excinfo.value.message == "Missing token"
    assert realtime_auth_failures_total.value("missing_credential") == 1


@pytest.mark.anyio("asyncio")
async def test_authenticate_with_unknown_token(hub):
    with pytest.raises(InvalidCredential) as excinfo:
        await hub.lifecycle.authenticate("forged")

    assert excinfo.value.message == "Invalid token"
    assert realtime_auth_failures_total.value("invalid_credential") == 1


@pytest.mark.anyio("asyncio")
async def test_authenticate_rejects_inactive_account(hub, verifier):
    verifier.identities["banned"] = _identity("3", "mallory", is_active=False)

    with pytest.raises(InvalidCredential):
        await hub.lifecycle.authenticate("banned")


@pytest.mark.anyio("asyncio")
async def test_authenticate_times_out_slow_verifier(clock):
    class SlowVerifier:
        async def verify(self, token):
            await asyncio.sleep(5)

    slow_hub = RealtimeHub(SlowVerifier(), verification_timeout=0.05, clock=clock)

    with pytest.raises(InvalidCredential):
        await slow_hub.lifecycle.authenticate("whatever")


@pytest.mark.anyio("asyncio")
async def test_authenticate_handshake_reads_header(hub, verifier):
    verifier.identities["hdr"] = _identity("4", "dave")

    identity = await hub.lifecycle.authenticate_handshake({}, {"authorization": "Bearer hdr"})

    assert identity.username == "dave"


@pytest.mark.anyio("asyncio")
async def test_on_connect_announces_and_lists_online_users(hub, make_connection):
    alice = make_connection("1", "alice")
    bob = make_connection("2", "bob")

    await hub.lifecycle.on_connect(alice)
    await hub.lifecycle.on_connect(bob)

    assert alice.sink.events() == ["user_online", "online_users", "user_online"]
    assert alice.sink.payloads("user_online")[1]["userId"] == "2"
    assert bob.sink.events() == ["user_online", "online_users"]
    [online] = bob.sink.payloads("online_users")
    assert sorted(user["userId"] for user in online) == ["1", "2"]
    assert set(online[0]) == {"userId", "username", "profile"}


@pytest.mark.anyio("asyncio")
async def test_on_disconnect_runs_once(hub, make_connection):
    alice = make_connection("1", "alice")
    bob = make_connection("2", "bob")
    await hub.lifecycle.on_connect(alice)
    await hub.lifecycle.on_connect(bob)
    await hub.rooms.join("r1", bob)
    alice.sink.clear()

    await hub.lifecycle.on_disconnect(bob, "client closed")
    await hub.lifecycle.on_disconnect(bob, "transport error")

    assert "2" not in hub.registry
    assert await hub.rooms.members("r1") == []
    assert alice.sink.sent == [("user_offline", {"userId": "2", "username": "bob"})]


@pytest.mark.anyio("asyncio")
async def test_disconnect_of_superseded_socket_removes_user(hub, make_connection):
    first = make_connection("1", "alice")
    second = make_connection("1", "alice")
    await hub.lifecycle.on_connect(first)
    await hub.lifecycle.on_connect(second)

    await hub.lifecycle.on_disconnect(first)

    assert "1" not in hub.registry
    assert second.disconnected is False


@pytest.mark.anyio("asyncio")
async def test_sweep_evicts_without_notifying(hub, make_connection, clock):
    old = make_connection("a", "old")
    fresh = make_connection("b", "fresh")
    await hub.lifecycle.on_connect(old)
    clock.advance(minutes=8)
    await hub.lifecycle.on_connect(fresh)
    clock.advance(minutes=3)
    old.sink.clear()
    fresh.sink.clear()

    evicted = await hub.lifecycle.sweep()

    assert [entry.user_id for entry in evicted] == ["a"]
    assert "a" not in hub.registry
    assert "b" in hub.registry
    assert fresh.sink.sent == []
    assert old.sink.sent == []


@pytest.mark.anyio("asyncio")
async def test_background_sweep_task_starts_and_stops(verifier, make_connection, clock):
    sweeping_hub = RealtimeHub(
        verifier,
        sweep_interval=timedelta(milliseconds=10),
        stale_after=timedelta(minutes=10),
        clock=clock,
    )
    await sweeping_hub.lifecycle.on_connect(make_connection("a", "old"))
    clock.advance(minutes=11)

    await sweeping_hub.start()
    try:
        for _ in range(100):
            if "a" not in sweeping_hub.registry:
                break
            await asyncio.sleep(0.01)
    finally:
        await sweeping_hub.stop()

    assert "a" not in sweeping_hub.registry
    assert sweeping_hub.lifecycle._sweep_task is None


@pytest.mark.anyio("asyncio")
async def test_authenticate_refuses_when_verifier_crashes(clock):
    class BrokenVerifier:
        async def verify(self, token):
            raise ConnectionError("account store unreachable")

    broken_hub = RealtimeHub(BrokenVerifier(), clock=clock)

    with pytest.raises(InvalidCredential):
        await broken_hub.lifecycle.authenticate("tok")

    assert realtime_auth_failures_total.value("invalid_credential") == 1
