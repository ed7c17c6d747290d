from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

import requests

from ess_portal.settings import get_settings, get_upstream_base_url

logger = logging.getLogger("ess_portal.upstream")

_FAILURE_STATUSES = {"fail", "failed", "error"}


class UpstreamError(Exception):
    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class UpstreamUnavailableError(UpstreamError):
    """Network failure, 5xx, or a body that is not JSON."""


class UpstreamRejectedError(UpstreamError):
    """The remote answered and said no."""


@dataclass(frozen=True)
class UpstreamResult:
    status_code: int
    body: Any
    data: Any
    message: str | None
    token: str | None


def _extract_message(body: Any) -> str | None:
    if not isinstance(body, dict):
        return None
    for key in ("message", "error", "msg"):
        value = body.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
        if isinstance(value, dict) and isinstance(value.get("message"), str):
            return value["message"]
    return None


def _extract_token(body: Any) -> str | None:
    if not isinstance(body, dict):
        return None
    candidates = [body]
    if isinstance(body.get("data"), dict):
        candidates.append(body["data"])
    for candidate in candidates:
        for key in ("token", "authToken", "access_token"):
            value = candidate.get(key)
            if isinstance(value, str) and value:
                return value
    return None


def _is_envelope_failure(body: Any) -> bool:
    if not isinstance(body, dict):
        return False
    status_value = body.get("status")
    if isinstance(status_value, str) and status_value.strip().lower() in _FAILURE_STATUSES:
        return True
    return body.get("success") is False


def _unwrap(body: Any) -> Any:
    # {"status": "success", "data": [...]} carries the payload in "data"; anything else is the payload.
    if isinstance(body, dict) and "data" in body and ("status" in body or "success" in body):
        return body["data"]
    return body


def parse_response(response: requests.Response) -> UpstreamResult:
    status_code = response.status_code
    if status_code >= 500:
        raise UpstreamUnavailableError(
            f"Upstream responded with HTTP {status_code}.",
            status_code=status_code,
        )

    try:
        body = response.json() if response.content else None
    except ValueError as exc:
        if status_code >= 400:
            raise UpstreamRejectedError("Request was rejected by the HR service.", status_code=status_code) from exc
        raise UpstreamUnavailableError("Upstream returned a non-JSON body.", status_code=status_code) from exc

    message = _extract_message(body)
    if status_code >= 400 or _is_envelope_failure(body):
        raise UpstreamRejectedError(
            message or "Request was rejected by the HR service.",
            status_code=status_code,
        )

    return UpstreamResult(
        status_code=status_code,
        body=body,
        data=_unwrap(body),
        message=message,
        token=_extract_token(body),
    )


class UpstreamClient:
    """Thin wrapper over the remote HR API. One call in, one call out, no retries."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 20.0,
        http: requests.Session | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._http = http or requests.Session()
        self._http.headers.update({"Accept": "application/json"})

    def url_for(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def request(
        self,
        method: str,
        path: str,
        *,
        token: str | None = None,
        payload: dict[str, Any] | None = None,
    ) -> UpstreamResult:
        headers: dict[str, str] = {}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        start = time.perf_counter()
        status_code: int | None = None
        try:
            response = self._http.request(
                method,
                self.url_for(path),
                json=payload,
                headers=headers,
                timeout=self.timeout_seconds,
            )
            status_code = response.status_code
        except requests.RequestException as exc:
            raise UpstreamUnavailableError(f"Upstream unreachable: {exc.__class__.__name__}") from exc
        finally:
            logger.info(
                "upstream_call",
                extra={
                    "upstream_method": method,
                    "upstream_path": path,
                    "upstream_status": status_code,
                    "latency_ms": round((time.perf_counter() - start) * 1000, 2),
                },
            )
        return parse_response(response)

    def login(self, employee_id: str, password: str) -> UpstreamResult:
        return self.request("POST", "/auth/login", payload={"employeeId": employee_id, "password": password})

    def logout(self, token: str) -> UpstreamResult:
        return self.request("POST", "/auth/logout", token=token)

    def get(self, path: str, token: str) -> UpstreamResult:
        return self.request("GET", path, token=token)

    def post(self, path: str, token: str, payload: dict[str, Any] | None = None) -> UpstreamResult:
        return self.request("POST", path, token=token, payload=payload)

    def close(self) -> None:
        self._http.close()


@lru_cache
def get_upstream_client() -> UpstreamClient:
    settings = get_settings()
    return UpstreamClient(
        get_upstream_base_url(),
        timeout_seconds=settings.upstream_timeout_seconds,
    )
