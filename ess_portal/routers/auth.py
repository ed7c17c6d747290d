from fastapi import APIRouter, Depends, Request, Response

from ess_portal.errors import ApiError
from ess_portal.schemas import LoginRequest, LoginResponse, MessageResponse, User
from ess_portal.security import (
    create_session_token,
    ensure_login_attempt_allowed,
    optional_session,
    register_login_failure,
    register_login_success,
    require_session,
)
from ess_portal.services import auth as auth_service
from ess_portal.sessions import Session, SessionStore, get_session_store
from ess_portal.settings import get_settings
from ess_portal.upstream import UpstreamClient, get_upstream_client

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _client_ip(request: Request) -> str:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client:
        return request.client.host
    return "unknown"


def _set_session_cookie(response: Response, token: str) -> None:
    settings = get_settings()
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        path="/",
        samesite="lax",
        secure=settings.session_cookie_secure,
        httponly=True,
    )


@router.post("/login", response_model=LoginResponse, response_model_by_alias=True)
def login(
    payload: LoginRequest,
    request: Request,
    response: Response,
    current: Session | None = Depends(optional_session),
    upstream: UpstreamClient = Depends(get_upstream_client),
    store: SessionStore = Depends(get_session_store),
) -> LoginResponse:
    ip = _client_ip(request)
    ensure_login_attempt_allowed(ip)
    try:
        session = auth_service.login(upstream, store, payload)
    except ApiError as exc:
        if exc.status_code == 401:
            register_login_failure(ip)
        raise
    register_login_success(ip)

    # A browser that logs in again replaces its own session, never someone else's.
    if current is not None:
        store.destroy(current.session_id)

    token = create_session_token(session)
    _set_session_cookie(response, token)
    request.state.employee_id = session.employee_id
    return LoginResponse(user=session.user, token=token)


@router.post("/logout", response_model=MessageResponse)
def logout(
    response: Response,
    session: Session | None = Depends(optional_session),
    upstream: UpstreamClient = Depends(get_upstream_client),
    store: SessionStore = Depends(get_session_store),
) -> MessageResponse:
    auth_service.logout(upstream, store, session)
    response.delete_cookie(get_settings().session_cookie_name, path="/")
    return MessageResponse(message="Logged out successfully")


@router.get("/user", response_model=User, response_model_by_alias=True)
def current_user(session: Session = Depends(require_session)) -> User:
    return session.user
