"""Validate inbound client events and fan them out to the right sockets."""

from __future__ import annotations

import logging
import time
from typing import Any, Awaitable, Callable, Dict, TypeVar

from pydantic import BaseModel, ValidationError

from app.monitoring.metrics import realtime_errors_total, realtime_events_total

from .connection import Connection
from .errors import InvalidPayload, MissingField, RealtimeError, TargetNotOnline
from .events import (
    CommentAddedPayload,
    InboundEvent,
    InboundEventType,
    MessageType,
    Notification,
    NotificationSender,
    OutboundEventType,
    PostLikedPayload,
    PrivateMessage,
    RoomMessage,
    RoomRef,
    SendMessagePayload,
    SendPrivateMessagePayload,
    StatusUpdatePayload,
    StatusUpdated,
)
from .registry import ConnectionRegistry
from .rooms import RoomMembershipTracker

logger = logging.getLogger(__name__)

PayloadT = TypeVar("PayloadT", bound=BaseModel)
Handler = Callable[[Connection, Any], Awaitable[None]]

NOTIFICATION_TEMPLATES: dict[str, str] = {
    InboundEventType.POST_LIKED.value: '{username} liked your post "{title}"',
    InboundEventType.COMMENT_ADDED.value: '{username} commented on your post "{title}"',
}


class MessageIdGenerator:
    """Time based identifiers, strictly increasing within the process."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._last = 0

    def __call__(self) -> str:
        candidate = int(self._clock() * 1000)
        if candidate <= self._last:
            candidate = self._last + 1
        self._last = candidate
        return str(candidate)


def _parse(model: type[PayloadT], data: Any) -> PayloadT:
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise InvalidPayload("invalid message format")
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise InvalidPayload("invalid message format") from exc


def _message_type(value: str | None) -> MessageType:
    if value in (None, ""):
        return MessageType.TEXT
    try:
        return MessageType(value)
    except ValueError:
        raise InvalidPayload("invalid message type") from None


def _room_id(data: Any) -> str | None:
    if isinstance(data, (str, int)) and not isinstance(data, bool):
        return str(data) or None
    return _parse(RoomRef, data).room_id or None


class MessageRouter:
    """Route tagged client events to their handlers.

    Handlers raise :class:`RealtimeError` subclasses for anything the sender
    got wrong; :meth:`dispatch` turns those into one ``error`` event for the
    sender and never fans them out.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        rooms: RoomMembershipTracker,
        *,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._registry = registry
        self._rooms = rooms
        self._next_id = id_factory or MessageIdGenerator()
        self._handlers: Dict[str, Handler] = {
            InboundEventType.JOIN_ROOM.value: self.join_room,
            InboundEventType.LEAVE_ROOM.value: self.leave_room,
            InboundEventType.SEND_MESSAGE.value: self.send_room_message,
            InboundEventType.SEND_PRIVATE_MESSAGE.value: self.send_private_message,
            InboundEventType.TYPING_START.value: self.typing_start,
            InboundEventType.TYPING_STOP.value: self.typing_stop,
            InboundEventType.POST_LIKED.value: self.post_liked,
            InboundEventType.COMMENT_ADDED.value: self.comment_added,
            InboundEventType.UPDATE_STATUS.value: self.update_status,
            InboundEventType.PING.value: self.ping,
        }

    async def dispatch(self, connection: Connection, event: InboundEvent) -> None:
        handler = self._handlers.get(event.type)
        try:
            if handler is None:
                raise InvalidPayload("unsupported event")
            realtime_events_total.labels(event.type, "in").inc()
            await handler(connection, event.data)
        except RealtimeError as exc:
            logger.debug(
                "Rejected %s from %s: %s", event.type, connection.user.username, exc.message
            )
            await self.send_error(connection, exc)
        except Exception:
            logger.exception(
                "Unexpected error while handling %s from %s", event.type, connection.user.username
            )
            await self.send_error(connection, RealtimeError("internal error"))

    async def send_error(self, connection: Connection, error: RealtimeError) -> None:
        realtime_errors_total.labels(error.reason).inc()
        await self._emit(connection, OutboundEventType.ERROR, {"message": error.message})

    # ------------------------------------------------------------------
    # Rooms
    # ------------------------------------------------------------------
    async def join_room(self, connection: Connection, data: Any) -> None:
        room_id = _room_id(data)
        if not room_id:
            raise MissingField("room id required")
        await self._rooms.join(room_id, connection)
        logger.debug("%s joined room %s", connection.user.username, room_id)
        await self._room_broadcast(
            room_id,
            OutboundEventType.USER_JOINED,
            {**connection.user.summary(), "roomId": room_id},
            exclude={connection},
        )

    async def leave_room(self, connection: Connection, data: Any) -> None:
        room_id = _room_id(data)
        if not room_id:
            raise MissingField("room id required")
        await self._rooms.leave(room_id, connection)
        logger.debug("%s left room %s", connection.user.username, room_id)
        await self._room_broadcast(
            room_id,
            OutboundEventType.USER_LEFT,
            {"userId": connection.user_id, "username": connection.user.username, "roomId": room_id},
            exclude={connection},
        )

    async def send_room_message(self, connection: Connection, data: Any) -> None:
        payload = _parse(SendMessagePayload, data)
        if not payload.room_id or not payload.message:
            raise MissingField("room id and message required")
        user = connection.user
        record = RoomMessage(
            id=self._next_id(),
            user_id=user.id,
            username=user.username,
            profile=dict(user.profile),
            message=payload.message,
            type=_message_type(payload.type),
            timestamp=self._registry.now(),
            room_id=payload.room_id,
        )
        await self._room_broadcast(
            payload.room_id, OutboundEventType.NEW_MESSAGE, record.to_payload()
        )

    async def typing_start(self, connection: Connection, data: Any) -> None:
        await self._typing(connection, data, OutboundEventType.USER_TYPING)

    async def typing_stop(self, connection: Connection, data: Any) -> None:
        await self._typing(connection, data, OutboundEventType.USER_STOPPED_TYPING)

    async def _typing(self, connection: Connection, data: Any, event: OutboundEventType) -> None:
        try:
            room_id = _room_id(data)
        except InvalidPayload:
            return
        if not room_id:
            return
        await self._room_broadcast(
            room_id,
            event,
            {"userId": connection.user_id, "username": connection.user.username, "roomId": room_id},
            exclude={connection},
        )

    # ------------------------------------------------------------------
    # Direct delivery
    # ------------------------------------------------------------------
    async def send_private_message(self, connection: Connection, data: Any) -> None:
        payload = _parse(SendPrivateMessagePayload, data)
        if not payload.target_user_id or not payload.message:
            raise MissingField("target user id and message required")
        message_type = _message_type(payload.type)
        target = await self._registry.get(payload.target_user_id)
        if target is None:
            raise TargetNotOnline()

        user = connection.user
        record = PrivateMessage(
            id=self._next_id(),
            from_user_id=user.id,
            from_username=user.username,
            from_profile=dict(user.profile),
            to_user_id=payload.target_user_id,
            message=payload.message,
            type=message_type,
            timestamp=self._registry.now(),
        ).to_payload()
        await self._emit(target.connection, OutboundEventType.PRIVATE_MESSAGE, record)
        await self._emit(connection, OutboundEventType.PRIVATE_MESSAGE_SENT, record)

    async def post_liked(self, connection: Connection, data: Any) -> None:
        payload = _parse(PostLikedPayload, data)
        await self._notify_author(connection, InboundEventType.POST_LIKED.value, payload)

    async def comment_added(self, connection: Connection, data: Any) -> None:
        payload = _parse(CommentAddedPayload, data)
        await self._notify_author(
            connection,
            InboundEventType.COMMENT_ADDED.value,
            payload,
            comment=payload.comment,
        )

    async def _notify_author(
        self,
        connection: Connection,
        kind: str,
        payload: PostLikedPayload,
        *,
        comment: Any = None,
    ) -> None:
        if not payload.author_id:
            return
        author = await self._registry.get(payload.author_id)
        if author is None:
            logger.debug("Dropping %s notification for offline user %s", kind, payload.author_id)
            return
        user = connection.user
        notification = Notification(
            type=kind,
            message=NOTIFICATION_TEMPLATES[kind].format(
                username=user.username, title=payload.post_title or ""
            ),
            post_id=payload.post_id,
            comment=comment,
            from_user=NotificationSender(
                user_id=user.id, username=user.username, profile=dict(user.profile)
            ),
            timestamp=self._registry.now(),
        )
        await self._emit(
            author.connection, OutboundEventType.NOTIFICATION, notification.to_payload()
        )

    # ------------------------------------------------------------------
    # Presence
    # ------------------------------------------------------------------
    async def update_status(self, connection: Connection, data: Any) -> None:
        payload = _parse(StatusUpdatePayload, data)
        if not payload.status:
            raise MissingField("status required")
        entry = await self._registry.update_status(connection.user_id, payload.status)
        record = StatusUpdated(
            user_id=connection.user_id,
            username=connection.user.username,
            status=payload.status,
            timestamp=entry.last_activity if entry is not None else self._registry.now(),
        )
        event = OutboundEventType.USER_STATUS_UPDATED
        delivered = await self._registry.broadcast(event.value, record.to_payload())
        realtime_events_total.labels(event.value, "out").inc(amount=delivered)

    async def ping(self, connection: Connection, data: Any) -> None:
        await self._emit(connection, OutboundEventType.PONG)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    async def _emit(
        self, connection: Connection, event: OutboundEventType, payload: Any = None
    ) -> bool:
        sent = await connection.send(event.value, payload)
        if sent:
            realtime_events_total.labels(event.value, "out").inc()
        return sent

    async def _room_broadcast(
        self,
        room_id: str,
        event: OutboundEventType,
        payload: Any,
        *,
        exclude: set[Connection] | None = None,
    ) -> None:
        delivered = await self._rooms.broadcast(room_id, event.value, payload, exclude=exclude)
        realtime_events_total.labels(event.value, "out").inc(amount=delivered)


__all__ = ["MessageIdGenerator", "MessageRouter", "NOTIFICATION_TEMPLATES"]
