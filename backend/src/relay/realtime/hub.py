"""Composition root for the realtime core."""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

from .identity import IdentityVerifier
from .lifecycle import ConnectionLifecycleManager
from .registry import Clock, ConnectionRegistry
from .rooms import RoomMembershipTracker
from .router import MessageRouter

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from app.config import Settings


class RealtimeHub:
    """Owns one registry, room tracker, router and lifecycle manager."""

    def __init__(
        self,
        verifier: IdentityVerifier,
        *,
        verification_timeout: float = 5.0,
        sweep_interval: timedelta = timedelta(minutes=5),
        stale_after: timedelta = timedelta(minutes=10),
        clock: Clock | None = None,
    ) -> None:
        self.registry = ConnectionRegistry(clock=clock)
        self.rooms = RoomMembershipTracker()
        self.router = MessageRouter(self.registry, self.rooms)
        self.lifecycle = ConnectionLifecycleManager(
            self.registry,
            self.rooms,
            verifier,
            verification_timeout=verification_timeout,
            sweep_interval=sweep_interval,
            stale_after=stale_after,
        )

    @classmethod
    def from_settings(cls, settings: "Settings", verifier: IdentityVerifier) -> "RealtimeHub":
        return cls(
            verifier,
            verification_timeout=settings.identity_verification_timeout_seconds,
            sweep_interval=timedelta(seconds=settings.presence_sweep_interval_seconds),
            stale_after=timedelta(seconds=settings.presence_stale_after_seconds),
        )

    async def start(self) -> None:
        await self.lifecycle.start()

    async def stop(self) -> None:
        await self.lifecycle.stop()


__all__ = ["RealtimeHub"]
