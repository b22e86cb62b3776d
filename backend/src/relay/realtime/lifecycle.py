"""Connection lifecycle: handshake authentication, presence and stale sweeps."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import timedelta
from typing import Any, Mapping

from app.monitoring.metrics import realtime_auth_failures_total, realtime_events_total

from .connection import Connection
from .errors import AuthenticationError, InvalidCredential, MissingCredential
from .events import OutboundEventType
from .identity import IdentityVerifier, UserIdentity, VerificationError
from .registry import ConnectionEntry, ConnectionRegistry
from .rooms import RoomMembershipTracker

logger = logging.getLogger(__name__)

DEFAULT_SWEEP_INTERVAL = timedelta(minutes=5)
DEFAULT_STALE_AFTER = timedelta(minutes=10)


def extract_credential(query_params: Mapping[str, str], headers: Mapping[str, str]) -> str | None:
    """Return the bearer token of a handshake, if one was supplied."""

    token = query_params.get("token")
    if not token:
        auth_header = headers.get("authorization")
        if auth_header and auth_header.startswith("Bearer "):
            token = auth_header.removeprefix("Bearer ").strip()
    return token or None


class ConnectionLifecycleManager:
    """Own the transitions of a connection in and out of the registry."""

    def __init__(
        self,
        registry: ConnectionRegistry,
        rooms: RoomMembershipTracker,
        verifier: IdentityVerifier,
        *,
        verification_timeout: float = 5.0,
        sweep_interval: timedelta = DEFAULT_SWEEP_INTERVAL,
        stale_after: timedelta = DEFAULT_STALE_AFTER,
    ) -> None:
        self._registry = registry
        self._rooms = rooms
        self._verifier = verifier
        self._verification_timeout = verification_timeout
        self._sweep_interval = sweep_interval
        self._stale_after = stale_after
        self._sweep_task: asyncio.Task[Any] | None = None

    @property
    def stale_after(self) -> timedelta:
        return self._stale_after

    async def authenticate(self, token: str | None) -> UserIdentity:
        """Resolve *token* to an active identity or raise :class:`AuthenticationError`."""

        try:
            if not token:
                raise MissingCredential()
            try:
                identity = await asyncio.wait_for(
                    self._verifier.verify(token), timeout=self._verification_timeout
                )
            except VerificationError as exc:
                raise InvalidCredential() from exc
            except asyncio.TimeoutError as exc:
                logger.warning("Identity verification timed out after %ss", self._verification_timeout)
                raise InvalidCredential() from exc
            except Exception as exc:
                logger.exception("Identity verification failed unexpectedly")
                raise InvalidCredential() from exc
            if identity is None or not identity.is_active:
                raise InvalidCredential()
        except AuthenticationError as exc:
            realtime_auth_failures_total.labels(exc.reason).inc()
            raise
        return identity

    async def authenticate_handshake(
        self, query_params: Mapping[str, str], headers: Mapping[str, str]
    ) -> UserIdentity:
        return await self.authenticate(extract_credential(query_params, headers))

    async def on_connect(self, connection: Connection) -> None:
        user = connection.user
        await self._registry.register(connection)
        logger.info("User connected: %s (%s)", user.username, connection.connection_id)

        delivered = await self._registry.broadcast(
            OutboundEventType.USER_ONLINE.value, user.summary()
        )
        realtime_events_total.labels(OutboundEventType.USER_ONLINE.value, "out").inc(amount=delivered)

        entries = await self._registry.snapshot()
        if await connection.send(
            OutboundEventType.ONLINE_USERS.value, [entry.user.summary() for entry in entries]
        ):
            realtime_events_total.labels(OutboundEventType.ONLINE_USERS.value, "out").inc()

    async def on_disconnect(self, connection: Connection, reason: str | None = None) -> None:
        """Remove *connection* from presence; later calls for it are no-ops."""

        if connection.disconnected:
            return
        connection.disconnected = True
        user = connection.user
        await self._registry.unregister(user.id)
        await self._rooms.drop(connection)
        logger.info(
            "User disconnected: %s (%s) - %s",
            user.username,
            connection.connection_id,
            reason or "unknown",
        )
        delivered = await self._registry.broadcast(
            OutboundEventType.USER_OFFLINE.value,
            {"userId": user.id, "username": user.username},
        )
        realtime_events_total.labels(OutboundEventType.USER_OFFLINE.value, "out").inc(amount=delivered)

    async def sweep(self) -> list[ConnectionEntry]:
        return await self._registry.evict_stale(self._stale_after)

    async def start(self) -> None:
        if self._sweep_task is not None and not self._sweep_task.done():
            return
        self._sweep_task = asyncio.create_task(
            self._sweep_forever(), name="realtime-presence-sweep"
        )

    async def stop(self) -> None:
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweep_task
            self._sweep_task = None

    async def _sweep_forever(self) -> None:
        interval = self._sweep_interval.total_seconds()
        while True:
            await asyncio.sleep(interval)
            try:
                await self.sweep()
            except Exception:
                logger.exception("Presence sweep failed")


__all__ = [
    "ConnectionLifecycleManager",
    "DEFAULT_STALE_AFTER",
    "DEFAULT_SWEEP_INTERVAL",
    "extract_credential",
]
