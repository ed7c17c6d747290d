"""Python client for the ESS gateway with a path-keyed query cache.

Reads go through :meth:`PortalClient.query`, which serves cached values until
a mutation explicitly invalidates them. Entries never expire on a timer and
are never refetched in the background. Writes go through
:meth:`PortalClient.mutate`, which always hits the network.

The named helpers (``check_in``, ``apply_leave`` ...) look up their dependent
read paths in :data:`MUTATION_INVALIDATIONS`, so the list of reads a
mutation makes stale lives in one place.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Iterable, Literal

import requests

logger = logging.getLogger("ess_portal.client")

UnauthorizedBehavior = Literal["throw", "return_null"]

MUTATION_INVALIDATIONS: dict[str, tuple[str, ...]] = {
    "attendance/checkin": ("attendance/today", "attendance", "dashboard/stats"),
    "attendance/checkout": ("attendance/today", "attendance", "dashboard/stats"),
    "leave/request": ("leave/requests", "leave/balances", "dashboard/stats"),
}

DASHBOARD_PATHS: tuple[str, ...] = ("employee/details", "dashboard/stats", "notices", "holidays")


class ApiRequestError(Exception):
    def __init__(self, status_code: int, message: str):
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message


class UnauthorizedError(ApiRequestError):
    pass


def _normalize_path(path: str) -> str:
    path = path.strip().strip("/")
    if path.startswith("api/"):
        path = path[len("api/"):]
    return path


def _error_message(response: Any) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and isinstance(body.get("message"), str):
        return body["message"]
    return response.text or f"HTTP {response.status_code}"


class QueryCache:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[str, Any] = {}

    def get(self, path: str) -> tuple[bool, Any]:
        with self._lock:
            if path in self._entries:
                return True, self._entries[path]
            return False, None

    def set(self, path: str, value: Any) -> None:
        with self._lock:
            self._entries[path] = value

    def invalidate(self, paths: Iterable[str]) -> None:
        with self._lock:
            for path in paths:
                self._entries.pop(path, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, path: str) -> bool:
        with self._lock:
            return path in self._entries


class PortalClient:
    def __init__(
        self,
        base_url: str,
        *,
        http: Any | None = None,
        timeout: float | None = None,
        max_workers: int = 4,
    ):
        self.base_url = base_url.rstrip("/")
        self.http = http if http is not None else requests.Session()
        self.timeout = timeout
        self.max_workers = max_workers
        self.cache = QueryCache()

    def url_for(self, path: str) -> str:
        return f"{self.base_url}/api/{_normalize_path(path)}"

    def _send(self, method: str, path: str, body: Any | None = None) -> Any:
        kwargs: dict[str, Any] = {"headers": {"Accept": "application/json"}}
        if body is not None:
            kwargs["json"] = body
        if self.timeout is not None:
            kwargs["timeout"] = self.timeout
        return self.http.request(method, self.url_for(path), **kwargs)

    def query(self, path: str, *, on_401: UnauthorizedBehavior = "throw") -> Any:
        key = _normalize_path(path)
        hit, value = self.cache.get(key)
        if hit:
            return value

        response = self._send("GET", key)
        if response.status_code == 401:
            if on_401 == "return_null":
                return None
            raise UnauthorizedError(401, _error_message(response))
        if not 200 <= response.status_code < 300:
            raise ApiRequestError(response.status_code, _error_message(response))

        value = response.json() if response.content else None
        self.cache.set(key, value)
        return value

    def query_many(self, paths: Iterable[str], *, on_401: UnauthorizedBehavior = "throw") -> dict[str, Any]:
        keys = [_normalize_path(path) for path in paths]
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futures = {key: pool.submit(self.query, key, on_401=on_401) for key in keys}
            return {key: future.result() for key, future in futures.items()}

    def mutate(
        self,
        path: str,
        method: str = "POST",
        body: Any | None = None,
        *,
        invalidates: Iterable[str] = (),
    ) -> Any:
        response = self._send(method, path, body)
        if response.status_code == 401:
            raise UnauthorizedError(401, _error_message(response))
        if not 200 <= response.status_code < 300:
            raise ApiRequestError(response.status_code, _error_message(response))

        stale = [_normalize_path(item) for item in invalidates]
        self.cache.invalidate(stale)
        if stale:
            logger.debug("cache_invalidated", extra={"paths": stale})
        return response.json() if response.content else None

    def invalidate(self, *paths: str) -> None:
        self.cache.invalidate(_normalize_path(path) for path in paths)

    def clear(self) -> None:
        self.cache.clear()

    def is_cached(self, path: str) -> bool:
        return _normalize_path(path) in self.cache

    def _mutate_named(self, path: str, body: Any | None = None) -> Any:
        return self.mutate(path, "POST", body, invalidates=MUTATION_INVALIDATIONS.get(path, ()))

    def login(self, employee_id: str, password: str) -> Any:
        # Every cached read belongs to the previous identity.
        user = self.mutate("auth/login", "POST", {"employeeId": employee_id, "password": password})
        self.clear()
        return user

    def logout(self) -> Any:
        try:
            return self.mutate("auth/logout")
        finally:
            self.clear()

    def current_user(self) -> Any:
        return self.query("auth/user", on_401="return_null")

    def dashboard(self) -> dict[str, Any]:
        return self.query_many(DASHBOARD_PATHS)

    def check_in(self) -> Any:
        return self._mutate_named("attendance/checkin")

    def check_out(self) -> Any:
        return self._mutate_named("attendance/checkout")

    def apply_leave(self, leave_type: str, start_date: str, end_date: str, reason: str) -> Any:
        return self._mutate_named(
            "leave/request",
            {"type": leave_type, "startDate": start_date, "endDate": end_date, "reason": reason},
        )
