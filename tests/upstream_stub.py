from __future__ import annotations

import json
from typing import Any
from urllib.parse import urlparse

from ess_portal.upstream import UpstreamClient

BASE_URL = "https://hr.example.test/ess"


class FakeResponse:
    def __init__(self, status_code: int, body: Any = None, *, raw: bytes | None = None):
        self.status_code = status_code
        if raw is not None:
            self.content = raw
        elif body is None:
            self.content = b""
        else:
            self.content = json.dumps(body).encode("utf-8")

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return json.loads(self.content)


class StubHttp:
    """Stands in for requests.Session; routes are keyed by (method, path below the base URL)."""

    def __init__(self) -> None:
        self.headers: dict[str, str] = {}
        self.routes: dict[tuple[str, str], Any] = {}
        self.calls: list[dict[str, Any]] = []

    def on(self, method: str, path: str, status_code: int = 200, body: Any = None) -> None:
        self.routes[(method.upper(), path)] = FakeResponse(status_code, body)

    def respond(self, method: str, path: str, responder) -> None:  # type: ignore[no-untyped-def]
        self.routes[(method.upper(), path)] = responder

    def fail(self, method: str, path: str, exc: Exception) -> None:
        self.routes[(method.upper(), path)] = exc

    def request(self, method, url, json=None, headers=None, timeout=None):  # type: ignore[no-untyped-def]
        path = urlparse(url).path
        prefix = urlparse(BASE_URL).path
        if path.startswith(prefix):
            path = path[len(prefix):]
        self.calls.append({"method": method, "path": path, "json": json, "headers": dict(headers or {})})
        outcome = self.routes.get((method.upper(), path))
        if outcome is None:
            return FakeResponse(404, {"status": "fail", "message": "not found"})
        if isinstance(outcome, Exception):
            raise outcome
        if callable(outcome):
            return outcome(json)
        return outcome

    def calls_to(self, method: str, path: str) -> list[dict[str, Any]]:
        return [call for call in self.calls if call["method"] == method and call["path"] == path]

    def close(self) -> None:
        return None


def build_upstream() -> tuple[UpstreamClient, StubHttp]:
    http = StubHttp()
    return UpstreamClient(BASE_URL, timeout_seconds=5, http=http), http  # type: ignore[arg-type]


def login_body(employee_id: str = "EMP001", token: str = "tok-1") -> dict[str, Any]:
    return {
        "status": "success",
        "token": token,
        "user": {
            "id": 7,
            "employee_id": employee_id,
            "name": "John Doe",
            "email": "john.doe@company.com",
            "designation": "Senior Software Engineer",
            "department": "Technology Department",
            "password": "password123",
        },
    }
