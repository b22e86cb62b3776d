"""Shared pytest fixtures for backend tests."""

from __future__ import annotations

import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Iterator

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

ROOT_DIR = Path(__file__).resolve().parents[1]
for path in (ROOT_DIR, ROOT_DIR / "src"):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from app.main import app
from app.models import Base, User
from app.monitoring.registry import registry
from app.services import DatabaseIdentityVerifier
from relay.realtime import Connection, RealtimeHub, UserIdentity, VerificationError


class RecordingSink:
    """Sink that stores every delivered event."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, Any]] = []
        self.connected = True

    async def send(self, event: str, payload: Any = None) -> bool:
        if not self.connected:
            return False
        self.sent.append((event, payload))
        return True

    def events(self) -> list[str]:
        return [event for event, _ in self.sent]

    def payloads(self, event: str) -> list[Any]:
        return [payload for name, payload in self.sent if name == event]

    def clear(self) -> None:
        self.sent.clear()


class StaticVerifier:
    """Verifier backed by a token -> identity mapping."""

    def __init__(self, identities: dict[str, UserIdentity] | None = None) -> None:
        self.identities = dict(identities or {})

    async def verify(self, token: str) -> UserIdentity:
        try:
            return self.identities[token]
        except KeyError:
            raise VerificationError("unknown token") from None


class FrozenClock:
    """Manually advanced clock used for staleness scenarios."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def reset_metrics() -> Iterator[None]:
    registry.reset()
    yield
    registry.reset()


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture()
def verifier() -> StaticVerifier:
    return StaticVerifier()


@pytest.fixture()
def hub(verifier, clock) -> RealtimeHub:
    """Realtime hub wired with in-memory collaborators."""

    return RealtimeHub(verifier, verification_timeout=0.5, clock=clock)


@pytest.fixture()
def make_connection() -> Callable[..., Connection]:
    def factory(user_id: str, username: str | None = None, **profile: Any) -> Connection:
        identity = UserIdentity(
            id=user_id,
            username=username or f"user-{user_id}",
            profile=profile or {"avatar": None},
        )
        return Connection(user=identity, sink=RecordingSink())

    return factory


@pytest.fixture()
def test_engine() -> Iterator[Engine]:
    """Provide an in-memory SQLite engine for isolated tests."""

    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture()
def session_factory(test_engine) -> sessionmaker[Session]:
    """Return a session factory bound to the test engine."""

    return sessionmaker(bind=test_engine, future=True)


@pytest.fixture()
def create_user(session_factory) -> Callable[..., int]:
    """Insert an account and return its id."""

    def factory(username: str, *, is_active: bool = True, **fields: Any) -> int:
        with session_factory() as session:
            user = User(
                username=username,
                email=f"{username}@example.com",
                hashed_password="hashed",
                is_active=is_active,
                **fields,
            )
            session.add(user)
            session.commit()
            return user.id

    return factory


@pytest.fixture()
def client(session_factory) -> Iterator[TestClient]:
    """Yield a TestClient whose realtime hub resolves tokens against the test database."""

    original = app.state.realtime
    app.state.realtime = RealtimeHub(DatabaseIdentityVerifier(session_factory))
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.state.realtime = original
