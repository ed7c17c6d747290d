from __future__ import annotations

import logging

from ess_portal.errors import ApiError, upstream_unavailable
from ess_portal.schemas import LoginRequest, User
from ess_portal.security import fabricate_local_token
from ess_portal.sessions import Session, SessionStore
from ess_portal.settings import get_settings
from ess_portal.upstream import (
    UpstreamClient,
    UpstreamError,
    UpstreamRejectedError,
    UpstreamUnavailableError,
)

logger = logging.getLogger("ess_portal.auth")


def _resolve_auth_token(token: str | None, employee_id: str) -> str:
    if token:
        return token
    if get_settings().upstream_token_mode == "local":
        return fabricate_local_token(employee_id)
    raise ApiError(
        status_code=503,
        code="UPSTREAM_CONTRACT_ERROR",
        message="HR service did not issue an access token.",
    )


def login(upstream: UpstreamClient, store: SessionStore, payload: LoginRequest) -> Session:
    try:
        result = upstream.login(payload.employee_id, payload.password)
    except UpstreamRejectedError as exc:
        raise ApiError(
            status_code=401,
            code="INVALID_CREDENTIALS",
            message=exc.message or "Invalid credentials",
        ) from exc
    except UpstreamUnavailableError as exc:
        logger.warning(
            "login_upstream_unavailable",
            extra={"employee_id": payload.employee_id, "reason": exc.message},
        )
        raise upstream_unavailable() from exc

    body = result.body if isinstance(result.body, dict) else {}
    user = User.from_upstream(body, employee_id=payload.employee_id)
    auth_token = _resolve_auth_token(result.token, user.employee_id)
    session = store.create(user, auth_token)
    logger.info("login_succeeded", extra={"employee_id": user.employee_id})
    return session


def logout(upstream: UpstreamClient, store: SessionStore, session: Session | None) -> None:
    """Best effort remote logout; the local session is always dropped."""
    if session is None:
        return
    try:
        upstream.logout(session.auth_token)
    except UpstreamError as exc:
        logger.warning(
            "logout_upstream_failed",
            extra={"employee_id": session.employee_id, "reason": exc.message},
        )
    finally:
        store.destroy(session.session_id)
    logger.info("logout_completed", extra={"employee_id": session.employee_id})
