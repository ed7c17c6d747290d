from __future__ import annotations

import secrets
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import lru_cache

from ess_portal.schemas import User


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Session:
    session_id: str
    user: User
    auth_token: str
    created_at_utc: datetime = field(default_factory=_utcnow)
    last_seen_at_utc: datetime = field(default_factory=_utcnow)
    active_checkin_at_utc: datetime | None = None

    @property
    def employee_id(self) -> str:
        return self.user.employee_id


class SessionStore:
    """In-memory sessions keyed by an opaque identifier.

    Each browser gets its own entry, so concurrent users never see each
    other's upstream token. Entries have no expiry: they live until logout
    or until the process exits.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sessions: dict[str, Session] = {}

    def create(self, user: User, auth_token: str) -> Session:
        session = Session(
            session_id=secrets.token_urlsafe(24),
            user=user,
            auth_token=auth_token,
        )
        with self._lock:
            self._sessions[session.session_id] = session
        return session

    def lookup(self, session_id: str | None) -> Session | None:
        if not session_id:
            return None
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None:
                session.last_seen_at_utc = _utcnow()
            return session

    def destroy(self, session_id: str | None) -> bool:
        if not session_id:
            return False
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()


@lru_cache
def get_session_store() -> SessionStore:
    return SessionStore()
