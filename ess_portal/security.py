from __future__ import annotations

import threading
import time
from collections import defaultdict, deque
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from ess_portal.errors import ApiError, unauthorized
from ess_portal.sessions import Session, SessionStore, get_session_store
from ess_portal.settings import get_session_secret, get_settings

bearer_scheme = HTTPBearer(auto_error=False)

SESSION_TOKEN_TYPE = "session"
_ALGORITHM = "HS256"

_LOCK = threading.Lock()
_FAILED_ATTEMPTS: dict[str, deque[datetime]] = defaultdict(deque)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _attempt_window() -> timedelta:
    return timedelta(minutes=get_settings().login_attempt_window_minutes)


def _cleanup_attempts(ip: str, now: datetime) -> None:
    queue = _FAILED_ATTEMPTS[ip]
    threshold = now - _attempt_window()
    while queue and queue[0] < threshold:
        queue.popleft()
    if not queue:
        _FAILED_ATTEMPTS.pop(ip, None)


def ensure_login_attempt_allowed(ip: str) -> None:
    now = _utcnow()
    with _LOCK:
        _cleanup_attempts(ip, now)
        queue = _FAILED_ATTEMPTS.get(ip, deque())
        if len(queue) >= get_settings().login_max_attempts:
            raise ApiError(
                status_code=429,
                code="TOO_MANY_ATTEMPTS",
                message="Too many failed login attempts. Please try again later.",
            )


def register_login_failure(ip: str) -> None:
    now = _utcnow()
    with _LOCK:
        _cleanup_attempts(ip, now)
        _FAILED_ATTEMPTS[ip].append(now)


def register_login_success(ip: str) -> None:
    with _LOCK:
        _FAILED_ATTEMPTS.pop(ip, None)


def reset_login_attempts() -> None:
    with _LOCK:
        _FAILED_ATTEMPTS.clear()


def fabricate_local_token(employee_id: str) -> str:
    return f"session_{int(time.time() * 1000)}_{employee_id}"


def create_session_token(session: Session) -> str:
    claims = {
        "sid": session.session_id,
        "sub": session.employee_id,
        "iat": int(session.created_at_utc.timestamp()),
        "typ": SESSION_TOKEN_TYPE,
    }
    return jwt.encode(claims, get_session_secret(), algorithm=_ALGORITHM)


def decode_session_token(token: str) -> dict[str, Any]:
    try:
        payload = jwt.decode(
            token,
            get_session_secret(),
            algorithms=[_ALGORITHM],
            options={"require_sub": True, "verify_aud": False},
        )
    except JWTError as exc:
        raise unauthorized() from exc

    if payload.get("typ") != SESSION_TOKEN_TYPE:
        raise unauthorized()
    session_id = payload.get("sid")
    if not isinstance(session_id, str) or not session_id:
        raise unauthorized()
    return payload


def read_session_token(request: Request, credentials: HTTPAuthorizationCredentials | None) -> str | None:
    if credentials is not None and credentials.scheme.lower() == "bearer" and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(get_settings().session_cookie_name)


def resolve_session(token: str | None, store: SessionStore) -> Session | None:
    if not token:
        return None
    try:
        payload = decode_session_token(token)
    except ApiError:
        return None
    session = store.lookup(payload["sid"])
    if session is None or session.employee_id != payload.get("sub"):
        return None
    return session


def optional_session(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    store: SessionStore = Depends(get_session_store),
) -> Session | None:
    session = resolve_session(read_session_token(request, credentials), store)
    if session is not None:
        request.state.actor = "employee"
        request.state.employee_id = session.employee_id
    return session


def require_session(session: Session | None = Depends(optional_session)) -> Session:
    if session is None:
        raise unauthorized()
    return session
