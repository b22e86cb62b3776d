"""Addressable sinks and per-socket connection state."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Protocol

from fastapi.websockets import WebSocket, WebSocketDisconnect, WebSocketState

from .identity import UserIdentity

logger = logging.getLogger(__name__)


class EventSink(Protocol):
    """Capability to deliver an event to one specific connection."""

    async def send(self, event: str, payload: Any = None) -> bool:
        """Deliver *event*; return ``False`` if the connection is gone."""
        ...


def build_envelope(event: str, payload: Any = None) -> dict[str, Any]:
    envelope: dict[str, Any] = {"type": event}
    if payload is not None:
        envelope["data"] = payload
    return envelope


async def safe_send_json(websocket: WebSocket, data: dict[str, Any]) -> bool:
    """Safely send JSON data through websocket, handling disconnections gracefully.

    Returns True if message was sent successfully, False otherwise.
    """
    if websocket.application_state != WebSocketState.CONNECTED:
        return False
    try:
        await websocket.send_json(data)
        return True
    except (WebSocketDisconnect, RuntimeError) as e:
        logger.debug("Failed to send websocket message: %s", e)
        return False


class WebSocketSink:
    """Sink writing JSON envelopes to a FastAPI websocket."""

    def __init__(self, websocket: WebSocket) -> None:
        self._websocket = websocket

    async def send(self, event: str, payload: Any = None) -> bool:
        return await safe_send_json(self._websocket, build_envelope(event, payload))


@dataclass(eq=False, slots=True)
class Connection:
    """One authenticated transport connection.

    Identity comparison only: two connections of the same user are distinct.
    """

    user: UserIdentity
    sink: EventSink
    connection_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    disconnected: bool = False

    @property
    def user_id(self) -> str:
        return self.user.id

    async def send(self, event: str, payload: Any = None) -> bool:
        return await self.sink.send(event, payload)

    def __repr__(self) -> str:
        return f"Connection(user_id={self.user.id!r}, connection_id={self.connection_id!r})"


__all__ = [
    "Connection",
    "EventSink",
    "WebSocketSink",
    "build_envelope",
    "safe_send_json",
]
