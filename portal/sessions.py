"""
Session resolution – turning an opaque session token into the current Principal.
"""

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from portal.config import SESSION_EXPIRY_HOURS
from portal.models import Principal, Session
from portal.stores import SessionStore, UserStore

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: datetime) -> datetime:
    # Naive timestamps coming back from storage are UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SessionResolver:
    def __init__(self, session_store: SessionStore, user_store: UserStore,
                 clock: Callable[[], datetime] = utc_now):
        self.session_store = session_store
        self.user_store = user_store
        self.clock = clock

    def resolve_current_user(self, token: Optional[str]) -> Optional[Principal]:
        """
        Return the Principal behind *token*, or None.

        A missing token, an unknown token, an expired session and a session
        whose user is gone all look the same to the caller. Store failures are
        logged and also reported as None, since this runs on every protected
        request.
        """
        if not token:
            return None

        try:
            session = self.session_store.find_session_by_token(token)
            if session is None:
                return None
            if _aware(session.expires_at) < _aware(self.clock()):
                return None
            return self.user_store.find_principal_by_id(session.principal_id)
        except Exception:
            logger.exception("Session resolution failed")
            return None

    def start_session(self, principal_id: int,
                      ttl: timedelta = timedelta(hours=SESSION_EXPIRY_HOURS)) -> Session:
        session = Session(
            token=secrets.token_urlsafe(32),
            principal_id=principal_id,
            expires_at=self.clock() + ttl,
        )
        self.session_store.create_session(session)
        return session

    def end_session(self, token: str) -> None:
        self.session_store.delete_session(token)
