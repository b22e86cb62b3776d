"""Identity types consumed from the account service."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol


class VerificationError(Exception):
    """Raised by identity verifiers when a credential cannot be accepted."""


@dataclass(frozen=True, slots=True)
class UserIdentity:
    """Snapshot of an authenticated user taken at handshake time."""

    id: str
    username: str
    profile: Mapping[str, Any] = field(default_factory=dict)
    is_active: bool = True

    def summary(self) -> dict[str, Any]:
        return {"userId": self.id, "username": self.username, "profile": dict(self.profile)}


class IdentityVerifier(Protocol):
    """Maps a bearer credential to a user identity."""

    async def verify(self, token: str) -> UserIdentity:
        """Return the identity for *token* or raise :class:`VerificationError`."""
        ...


__all__ = ["IdentityVerifier", "UserIdentity", "VerificationError"]
