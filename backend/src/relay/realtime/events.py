"""Pydantic models for the realtime wire protocol."""

from __future__ import annotations

import json
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from .errors import InvalidPayload


class InboundEventType(str, Enum):
    """Events a client may send."""

    JOIN_ROOM = "join_room"
    LEAVE_ROOM = "leave_room"
    SEND_MESSAGE = "send_message"
    SEND_PRIVATE_MESSAGE = "send_private_message"
    TYPING_START = "typing_start"
    TYPING_STOP = "typing_stop"
    POST_LIKED = "post_liked"
    COMMENT_ADDED = "comment_added"
    UPDATE_STATUS = "update_status"
    PING = "ping"


class OutboundEventType(str, Enum):
    """Events the server emits."""

    USER_ONLINE = "user_online"
    ONLINE_USERS = "online_users"
    USER_JOINED = "user_joined"
    USER_LEFT = "user_left"
    NEW_MESSAGE = "new_message"
    PRIVATE_MESSAGE = "private_message"
    PRIVATE_MESSAGE_SENT = "private_message_sent"
    USER_TYPING = "user_typing"
    USER_STOPPED_TYPING = "user_stopped_typing"
    NOTIFICATION = "notification"
    USER_STATUS_UPDATED = "user_status_updated"
    USER_OFFLINE = "user_offline"
    ERROR = "error"
    PONG = "pong"


class MessageType(str, Enum):
    """Kinds of chat message content."""

    TEXT = "text"
    IMAGE = "image"
    FILE = "file"


class InboundEvent(BaseModel):
    """Tagged envelope received from a client."""

    model_config = ConfigDict(extra="ignore")

    type: str
    data: Any = None


def decode_frame(raw: str) -> InboundEvent:
    """Parse a text frame into an :class:`InboundEvent`."""

    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise InvalidPayload("invalid message format") from exc
    if not isinstance(payload, dict):
        raise InvalidPayload("invalid message format")
    try:
        return InboundEvent.model_validate(payload)
    except ValidationError as exc:
        raise InvalidPayload("invalid message format") from exc


class _InboundPayload(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )


class RoomRef(_InboundPayload):
    room_id: str | None = None


class SendMessagePayload(_InboundPayload):
    room_id: str | None = None
    message: str | None = None
    type: str | None = None


class SendPrivateMessagePayload(_InboundPayload):
    target_user_id: str | None = None
    message: str | None = None
    type: str | None = None


class PostLikedPayload(_InboundPayload):
    post_id: str | None = None
    post_title: str | None = None
    author_id: str | None = None


class CommentAddedPayload(PostLikedPayload):
    comment: Any = None


class StatusUpdatePayload(_InboundPayload):
    status: str | None = None


class _OutboundRecord(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class RoomMessage(_OutboundRecord):
    """Chat message delivered to every member of a room."""

    id: str
    user_id: str
    username: str
    profile: dict[str, Any] = Field(default_factory=dict)
    message: str
    type: MessageType
    timestamp: datetime
    room_id: str


class PrivateMessage(_OutboundRecord):
    """Direct message delivered to the target and echoed to the sender."""

    id: str
    from_user_id: str
    from_username: str
    from_profile: dict[str, Any] = Field(default_factory=dict)
    to_user_id: str
    message: str
    type: MessageType
    timestamp: datetime


class StatusUpdated(_OutboundRecord):
    user_id: str
    username: str
    status: str
    timestamp: datetime


class NotificationSender(_OutboundRecord):
    user_id: str
    username: str
    profile: dict[str, Any] = Field(default_factory=dict)


class Notification(_OutboundRecord):
    """Domain notification addressed to the author of a post."""

    type: str
    message: str
    post_id: str | None = None
    comment: Any = None
    from_user: NotificationSender
    timestamp: datetime


__all__ = [
    "CommentAddedPayload",
    "InboundEvent",
    "InboundEventType",
    "MessageType",
    "Notification",
    "NotificationSender",
    "OutboundEventType",
    "PostLikedPayload",
    "PrivateMessage",
    "RoomMessage",
    "RoomRef",
    "SendMessagePayload",
    "SendPrivateMessagePayload",
    "StatusUpdatePayload",
    "StatusUpdated",
    "decode_frame",
]
