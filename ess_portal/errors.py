from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse


class ApiError(Exception):
    def __init__(self, status_code: int, code: str, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message


UPSTREAM_UNAVAILABLE_MESSAGE = "HR service is unavailable. Please try again later."


def unauthorized(message: str = "Unauthorized") -> ApiError:
    return ApiError(status_code=401, code="UNAUTHORIZED", message=message)


def upstream_unavailable() -> ApiError:
    return ApiError(status_code=503, code="UPSTREAM_UNAVAILABLE", message=UPSTREAM_UNAVAILABLE_MESSAGE)


def upstream_rejected(message: str, status_code: int | None) -> ApiError:
    # A remote 401 means our relayed token is dead; anything else is a business-rule refusal.
    if status_code == 401:
        return unauthorized(message)
    return ApiError(status_code=400, code="UPSTREAM_REJECTED", message=message)


def get_request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        return str(request_id)
    return "unknown"


def error_response(request: Request, *, status_code: int, code: str, message: str) -> JSONResponse:
    payload = {
        "message": message,
        "code": code,
        "request_id": get_request_id(request),
    }
    return JSONResponse(status_code=status_code, content=payload)
