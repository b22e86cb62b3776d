"""WebSocket endpoint for presence and chat events."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any, Dict, TypeVar

import anyio
from fastapi import APIRouter, WebSocket, status
from fastapi.websockets import WebSocketDisconnect, WebSocketState

from app.config import get_settings
from relay.realtime import AuthenticationError, Connection, InvalidPayload, RealtimeHub, WebSocketSink
from relay.realtime.connection import safe_send_json
from relay.realtime.events import decode_frame

router = APIRouter(prefix="/ws", tags=["ws"])

settings = get_settings()

logger = logging.getLogger(__name__)

T = TypeVar("T")

KEEPALIVE_REPLY = "pong"


async def iter_keepalive_messages(
    websocket: WebSocket,
    receiver: Callable[[], Awaitable[T]],
    *,
    timeout_seconds: float | int | None,
    ping_interval_seconds: float | int | None,
    ping_payload: Dict[str, Any] | None = None,
) -> AsyncIterator[T]:
    """Yield messages from *receiver* while sending keepalive pings when idle."""

    ping_payload = ping_payload or {"type": "ping"}
    timeout = float(timeout_seconds) if timeout_seconds else 0.0
    interval = float(ping_interval_seconds) if ping_interval_seconds else 0.0
    last_activity = time.monotonic()
    last_ping_sent: float | None = None

    while True:
        try:
            if timeout > 0:
                message = await asyncio.wait_for(receiver(), timeout=timeout)
            else:
                message = await receiver()
        except asyncio.TimeoutError:
            if websocket.application_state != WebSocketState.CONNECTED:
                break

            now = time.monotonic()
            should_ping = interval <= 0 or (
                now - last_activity >= interval
                and (last_ping_sent is None or now - last_ping_sent >= interval)
            )
            if should_ping:
                if not await safe_send_json(websocket, ping_payload):
                    break
                last_ping_sent = now
            continue
        except (RuntimeError, WebSocketDisconnect):
            break
        else:
            last_activity = time.monotonic()
            last_ping_sent = None
            yield message


def get_realtime_hub(websocket: WebSocket) -> RealtimeHub:
    return websocket.app.state.realtime


async def receive_text_frame(websocket: WebSocket) -> str | None:
    """Return the next text frame, or ``None`` for a binary frame."""

    message = await websocket.receive()
    if message["type"] == "websocket.disconnect":
        raise WebSocketDisconnect(message.get("code", 1000), message.get("reason"))
    return message.get("text")


@router.websocket("/realtime")
async def websocket_realtime(websocket: WebSocket) -> None:
    """Authenticate the handshake, then route client events until the socket closes."""

    hub = get_realtime_hub(websocket)
    try:
        user = await hub.lifecycle.authenticate_handshake(websocket.query_params, websocket.headers)
    except AuthenticationError as exc:
        logger.info("Rejected realtime handshake: %s", exc.message)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=exc.message)
        return

    await websocket.accept()
    connection = Connection(user=user, sink=WebSocketSink(websocket))
    reason = "transport closed"
    try:
        await hub.lifecycle.on_connect(connection)
        async for raw_message in iter_keepalive_messages(
            websocket,
            lambda: receive_text_frame(websocket),
            timeout_seconds=settings.websocket_keepalive_timeout_seconds,
            ping_interval_seconds=settings.websocket_keepalive_ping_interval_seconds,
        ):
            if raw_message is None:
                await hub.router.send_error(connection, InvalidPayload("invalid message format"))
                continue
            try:
                event = decode_frame(raw_message)
            except InvalidPayload as exc:
                await hub.router.send_error(connection, exc)
                continue
            if event.type == KEEPALIVE_REPLY:
                continue
            await hub.router.dispatch(connection, event)
    except asyncio.CancelledError:
        reason = "server shutdown"
        raise
    finally:
        with anyio.CancelScope(shield=True):
            await hub.lifecycle.on_disconnect(connection, reason)
