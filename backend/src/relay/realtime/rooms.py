"""Explicit room addressing for websocket connections."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Any, Dict, Iterable, Set

from app.monitoring.metrics import realtime_rooms

from .connection import Connection


class RoomMembershipTracker:
    """Map room identifiers to the connections that joined them.

    Rooms exist while they have members: the first join creates one and the
    last leave discards it.
    """

    def __init__(self) -> None:
        self._members: Dict[str, Set[Connection]] = defaultdict(set)
        self._rooms: Dict[Connection, Set[str]] = defaultdict(set)
        self._lock = asyncio.Lock()

    async def join(self, room_id: str, connection: Connection) -> bool:
        """Add *connection* to *room_id*; return ``False`` if it was already there."""

        async with self._lock:
            bucket = self._members.setdefault(room_id, set())
            if connection in bucket:
                return False
            bucket.add(connection)
            self._rooms[connection].add(room_id)
            realtime_rooms.set(len(self._members))
            return True

    async def leave(self, room_id: str, connection: Connection) -> bool:
        async with self._lock:
            removed = self._discard_locked(room_id, connection)
            realtime_rooms.set(len(self._members))
            return removed

    async def drop(self, connection: Connection) -> list[str]:
        """Remove *connection* from every room, returning the rooms it left."""

        async with self._lock:
            rooms = sorted(self._rooms.get(connection, set()))
            for room_id in rooms:
                self._discard_locked(room_id, connection)
            self._rooms.pop(connection, None)
            realtime_rooms.set(len(self._members))
            return rooms

    async def members(self, room_id: str) -> list[Connection]:
        async with self._lock:
            return list(self._members.get(room_id, set()))

    async def rooms_for(self, connection: Connection) -> set[str]:
        async with self._lock:
            return set(self._rooms.get(connection, set()))

    async def broadcast(
        self,
        room_id: str,
        event: str,
        payload: Any = None,
        *,
        exclude: Iterable[Connection] | None = None,
    ) -> int:
        """Send *event* to the members of *room_id*; return the delivered count."""

        async with self._lock:
            targets = list(self._members.get(room_id, set()))
        exclude_set = set(exclude or [])
        delivered = 0
        for connection in targets:
            if connection in exclude_set:
                continue
            if await connection.send(event, payload):
                delivered += 1
        return delivered

    def _discard_locked(self, room_id: str, connection: Connection) -> bool:
        bucket = self._members.get(room_id)
        if not bucket or connection not in bucket:
            return False
        bucket.discard(connection)
        if not bucket:
            self._members.pop(room_id, None)
        rooms = self._rooms.get(connection)
        if rooms is not None:
            rooms.discard(room_id)
            if not rooms:
                self._rooms.pop(connection, None)
        return True


__all__ = ["RoomMembershipTracker"]
