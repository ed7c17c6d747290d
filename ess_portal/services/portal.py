from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from ess_portal.errors import ApiError, upstream_rejected, upstream_unavailable
from ess_portal.schemas import (
    AttendanceRecord,
    DashboardStats,
    DocumentRead,
    LeaveRequestCreate,
    LeaveRequestRead,
    PayrollRecord,
    is_active_checkin,
)
from ess_portal.sessions import Session
from ess_portal.settings import get_settings
from ess_portal.upstream import (
    UpstreamClient,
    UpstreamError,
    UpstreamRejectedError,
    UpstreamUnavailableError,
)

logger = logging.getLogger("ess_portal.portal")

CLIENT_TIME_KEYS = frozenset({"timestamp", "time", "checkIn", "checkOut", "check_in", "check_out", "ts_utc"})


def _empty_list() -> list[Any]:
    return []


def _none() -> None:
    return None


def _dashboard_fallback() -> dict[str, Any]:
    return DashboardStats.fallback(get_settings().working_days_per_month).to_wire()


@dataclass(frozen=True)
class ReadResource:
    remote_path: str
    fallback: Callable[[], Any]
    # Documented shape only; bodies are relayed unvalidated.
    documented_as: Any = None


READ_RESOURCES: dict[str, ReadResource] = {
    "dashboard/stats": ReadResource("/dashboard/stats", _dashboard_fallback, DashboardStats),
    "attendance": ReadResource("/attendance", _empty_list, list[AttendanceRecord]),
    "attendance/today": ReadResource("/attendance/today", _none, AttendanceRecord),
    "leave/requests": ReadResource("/leave/requests", _empty_list, list[LeaveRequestRead]),
    "leave/balances": ReadResource("/leave/balances", _empty_list),
    "payroll": ReadResource("/payroll", _empty_list, list[PayrollRecord]),
    "payroll/current": ReadResource("/payroll/current", _none, PayrollRecord),
    "documents": ReadResource("/documents", _empty_list, list[DocumentRead]),
    "employee/details": ReadResource("/employee/details", _none),
    "notices": ReadResource("/notices", _empty_list),
    "holidays": ReadResource("/holidays", _empty_list),
}

CHECKIN_REMOTE_PATH = "/attendance/checkin"
CHECKOUT_REMOTE_PATH = "/attendance/checkout"
LEAVE_APPLY_REMOTE_PATH = "/leave/apply"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def fetch_resource(upstream: UpstreamClient, session: Session, resource: str) -> Any:
    """Relay a read, substituting the resource's fallback when the remote fails.

    The UI cannot tell a fallback from real data, so every substitution is logged.
    """
    entry = READ_RESOURCES[resource]
    try:
        result = upstream.get(entry.remote_path, session.auth_token)
    except UpstreamError as exc:
        logger.warning(
            "upstream_fallback_served",
            extra={
                "resource": resource,
                "employee_id": session.employee_id,
                "reason": exc.message,
                "upstream_status": exc.status_code,
            },
        )
        return entry.fallback()
    return result.body


def _stamped(payload: dict[str, Any] | None, session: Session, now_utc: datetime) -> dict[str, Any]:
    body = {key: value for key, value in (payload or {}).items() if key not in CLIENT_TIME_KEYS}
    body["employeeId"] = session.employee_id
    body["timestamp"] = now_utc.isoformat()
    return body


def submit_mutation(
    upstream: UpstreamClient,
    session: Session,
    remote_path: str,
    payload: dict[str, Any],
) -> Any:
    try:
        result = upstream.post(remote_path, session.auth_token, payload)
    except UpstreamRejectedError as exc:
        raise upstream_rejected(exc.message, exc.status_code) from exc
    except UpstreamUnavailableError as exc:
        logger.warning(
            "mutation_upstream_unavailable",
            extra={"remote_path": remote_path, "employee_id": session.employee_id, "reason": exc.message},
        )
        raise upstream_unavailable() from exc
    return result.body


def check_in(
    upstream: UpstreamClient,
    session: Session,
    payload: dict[str, Any] | None = None,
    *,
    now_utc: datetime | None = None,
) -> Any:
    now_utc = now_utc or _utcnow()
    body = submit_mutation(upstream, session, CHECKIN_REMOTE_PATH, _stamped(payload, session, now_utc))
    session.active_checkin_at_utc = now_utc
    logger.info("checkin_relayed", extra={"employee_id": session.employee_id})
    return body


def _has_active_checkin(upstream: UpstreamClient, session: Session) -> bool:
    if session.active_checkin_at_utc is not None:
        return True
    try:
        today = upstream.get(READ_RESOURCES["attendance/today"].remote_path, session.auth_token)
    except UpstreamRejectedError:
        return False
    except UpstreamUnavailableError as exc:
        logger.warning(
            "checkout_precheck_unavailable",
            extra={"employee_id": session.employee_id, "reason": exc.message},
        )
        raise upstream_unavailable() from exc
    return is_active_checkin(today.data)


def check_out(
    upstream: UpstreamClient,
    session: Session,
    payload: dict[str, Any] | None = None,
    *,
    now_utc: datetime | None = None,
) -> Any:
    if not _has_active_checkin(upstream, session):
        raise ApiError(status_code=400, code="NO_ACTIVE_CHECKIN", message="No active check-in found")

    now_utc = now_utc or _utcnow()
    body = submit_mutation(upstream, session, CHECKOUT_REMOTE_PATH, _stamped(payload, session, now_utc))
    session.active_checkin_at_utc = None
    logger.info("checkout_relayed", extra={"employee_id": session.employee_id})
    return body


def apply_leave(
    upstream: UpstreamClient,
    session: Session,
    request: LeaveRequestCreate,
    *,
    now_utc: datetime | None = None,
) -> Any:
    now_utc = now_utc or _utcnow()
    payload = _stamped(request.to_wire(), session, now_utc)
    body = submit_mutation(upstream, session, LEAVE_APPLY_REMOTE_PATH, payload)
    logger.info(
        "leave_request_relayed",
        extra={"employee_id": session.employee_id, "leave_type": request.type},
    )
    return body
