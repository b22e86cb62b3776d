"""Exceptions raised by the realtime core."""

from __future__ import annotations


class RealtimeError(Exception):
    """Base class for realtime failures reported back to a single connection."""

    reason: str = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class AuthenticationError(RealtimeError):
    """Raised when a handshake cannot be authenticated."""

    reason = "authentication"


class MissingCredential(AuthenticationError):
    """Raised when the handshake carries no bearer credential."""

    reason = "missing_credential"

    def __init__(self, message: str = "Missing token") -> None:
        super().__init__(message)


class InvalidCredential(AuthenticationError):
    """Raised for malformed, expired, unknown or inactive credentials."""

    reason = "invalid_credential"

    def __init__(self, message: str = "Invalid token") -> None:
        super().__init__(message)


class MissingField(RealtimeError):
    """Raised when a required field of an inbound event is absent or empty."""

    reason = "missing_field"


class TargetNotOnline(RealtimeError):
    """Raised when a direct message addresses a user without a live connection."""

    reason = "target_not_online"

    def __init__(self, message: str = "target user not online") -> None:
        super().__init__(message)


class InvalidPayload(RealtimeError):
    """Raised for frames or fields the router cannot interpret."""

    reason = "invalid_payload"


__all__ = [
    "AuthenticationError",
    "InvalidCredential",
    "InvalidPayload",
    "MissingCredential",
    "MissingField",
    "RealtimeError",
    "TargetNotOnline",
]
