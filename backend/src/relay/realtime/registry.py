"""Process-wide registry of authenticated connections keyed by user id."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable

from app.monitoring.metrics import realtime_connections, realtime_stale_evictions_total

from .connection import Connection
from .identity import UserIdentity

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class ConnectionEntry:
    """Live-connection metadata for one online user."""

    user: UserIdentity
    connection: Connection
    connected_at: datetime
    status: str = "online"
    last_activity: datetime | None = None

    @property
    def user_id(self) -> str:
        return self.user.id


class ConnectionRegistry:
    """Track which users are online and how to reach them.

    One entry per user id; registering a second connection for the same user
    replaces the first (last-connected-wins). Every mutation holds the lock.
    """

    def __init__(self, *, clock: Clock | None = None) -> None:
        self._entries: dict[str, ConnectionEntry] = {}
        self._lock = asyncio.Lock()
        self._clock = clock or utcnow

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._entries

    def now(self) -> datetime:
        return self._clock()

    async def register(self, connection: Connection) -> ConnectionEntry | None:
        """Insert *connection*, returning the entry it superseded if any."""

        now = self._clock()
        entry = ConnectionEntry(
            user=connection.user,
            connection=connection,
            connected_at=now,
            last_activity=now,
        )
        async with self._lock:
            previous = self._entries.get(connection.user_id)
            self._entries[connection.user_id] = entry
            realtime_connections.labels("registry").set(len(self._entries))
        if previous is not None and previous.connection is not connection:
            logger.info(
                "Superseding connection %s for user %s",
                previous.connection.connection_id,
                connection.user_id,
            )
        return previous

    async def unregister(self, user_id: str) -> ConnectionEntry | None:
        async with self._lock:
            entry = self._entries.pop(user_id, None)
            realtime_connections.labels("registry").set(len(self._entries))
        return entry

    async def get(self, user_id: str) -> ConnectionEntry | None:
        async with self._lock:
            return self._entries.get(user_id)

    async def snapshot(self) -> list[ConnectionEntry]:
        async with self._lock:
            return list(self._entries.values())

    async def update_status(self, user_id: str, status: str) -> ConnectionEntry | None:
        async with self._lock:
            entry = self._entries.get(user_id)
            if entry is None:
                return None
            entry.status = status
            entry.last_activity = self._clock()
            return entry

    async def evict_stale(self, max_age: timedelta) -> list[ConnectionEntry]:
        """Remove entries connected longer than *max_age* ago.

        Age is measured from ``connected_at``, not from the last activity.
        """

        now = self._clock()
        async with self._lock:
            stale = [
                entry for entry in self._entries.values() if now - entry.connected_at > max_age
            ]
            for entry in stale:
                self._entries.pop(entry.user_id, None)
            realtime_connections.labels("registry").set(len(self._entries))
        if stale:
            realtime_stale_evictions_total.inc(amount=len(stale))
        for entry in stale:
            logger.info("Evicted stale presence entry for %s", entry.user.username)
        return stale

    async def broadcast(
        self,
        event: str,
        payload: Any = None,
        *,
        exclude: Iterable[Connection] | None = None,
    ) -> int:
        """Send *event* to every registered connection; return the delivered count."""

        async with self._lock:
            targets = [entry.connection for entry in self._entries.values()]
        exclude_set = set(exclude or [])
        delivered = 0
        for connection in targets:
            if connection in exclude_set:
                continue
            if await connection.send(event, payload):
                delivered += 1
        return delivered


__all__ = ["ConnectionEntry", "ConnectionRegistry", "utcnow"]
