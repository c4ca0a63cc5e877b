"""Errors surfaced at the HTTP boundary."""

from __future__ import annotations

from typing import Any


class ApiError(Exception):
    """Domain error translated verbatim into an HTTP response."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, *, code: str | None = None, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        error: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details is not None:
            error["details"] = self.details
        return {"error": error}


class ValidationFailed(ApiError):
    status_code = 400
    code = "VALIDATION_ERROR"


class Unauthorized(ApiError):
    status_code = 401
    code = "UNAUTHORIZED"


class InvalidApiKey(ApiError):
    status_code = 401
    code = "INVALID_API_KEY"


class NotFound(ApiError):
    status_code = 404
    code = "NOT_FOUND"


class Conflict(ApiError):
    """Raised when a request has already been resolved."""

    status_code = 409
    code = "CONFLICT"
