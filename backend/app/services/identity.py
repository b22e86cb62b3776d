"""Resolve websocket handshake tokens against the account store."""

from __future__ import annotations

import asyncio
import logging

from sqlalchemy.orm import Session, sessionmaker

from app.core.security import TokenError, subject_from_token
from app.database import get_db_session
from app.models import User
from relay.realtime.identity import UserIdentity, VerificationError

logger = logging.getLogger(__name__)


def identity_from_user(user: User) -> UserIdentity:
    return UserIdentity(
        id=str(user.id),
        username=user.username,
        profile=user.profile,
        is_active=user.is_active,
    )


class DatabaseIdentityVerifier:
    """JWT verification followed by an account lookup.

    The lookup is synchronous SQLAlchemy, so it runs in a worker thread to
    keep the event loop free while the handshake waits.
    """

    def __init__(self, session_factory: sessionmaker[Session] | None = None) -> None:
        self._session_factory = session_factory

    async def verify(self, token: str) -> UserIdentity:
        try:
            user_id = subject_from_token(token)
        except TokenError as exc:
            raise VerificationError(str(exc)) from exc
        return await asyncio.to_thread(self._load, user_id)

    def _load(self, user_id: int) -> UserIdentity:
        with get_db_session(self._session_factory) as db:
            user = db.get(User, user_id)
            if user is None:
                logger.debug("Token subject %s does not match an account", user_id)
                raise VerificationError("Unknown user")
            if not user.is_active:
                logger.debug("Rejecting inactive account %s", user_id)
                raise VerificationError("Inactive user")
            return identity_from_user(user)
