"""In-process presence tracking and message routing for websocket clients."""

from .connection import Connection, EventSink, WebSocketSink  # noqa: F401
from .errors import (  # noqa: F401
    AuthenticationError,
    InvalidCredential,
    InvalidPayload,
    MissingCredential,
    MissingField,
    RealtimeError,
    TargetNotOnline,
)
from .hub import RealtimeHub  # noqa: F401
from .identity import IdentityVerifier, UserIdentity, VerificationError  # noqa: F401
from .lifecycle import ConnectionLifecycleManager, extract_credential  # noqa: F401
from .registry import ConnectionEntry, ConnectionRegistry  # noqa: F401
from .rooms import RoomMembershipTracker  # noqa: F401
from .router import MessageRouter  # noqa: F401

__all__ = [
    "AuthenticationError",
    "Connection",
    "ConnectionEntry",
    "ConnectionLifecycleManager",
    "ConnectionRegistry",
    "EventSink",
    "IdentityVerifier",
    "InvalidCredential",
    "InvalidPayload",
    "MessageRouter",
    "MissingCredential",
    "MissingField",
    "RealtimeError",
    "RealtimeHub",
    "RoomMembershipTracker",
    "TargetNotOnline",
    "UserIdentity",
    "VerificationError",
    "WebSocketSink",
    "extract_credential",
]
