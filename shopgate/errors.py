"""Closed error taxonomy shared by every workflow.

Workflows raise these; ``shopgate.main`` maps them to HTTP responses. Anything
that is not an ``AppError`` is treated as an unexpected failure and answered
with a generic 500.
"""

from __future__ import annotations

from typing import Any


class AppError(Exception):
    code = "INTERNAL"
    http_status = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None, *, details: Any = None) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class InvalidArgumentError(AppError):
    code = "INVALID_ARGUMENT"
    http_status = 400
    default_message = "Invalid argument"


class UnauthorizedError(AppError):
    code = "UNAUTHORIZED"
    http_status = 401
    default_message = "Unauthorized"


class BadSignatureError(UnauthorizedError):
    code = "INVALID_SIGNATURE"
    default_message = "Invalid signature"


class ForbiddenError(AppError):
    code = "FORBIDDEN"
    http_status = 403
    default_message = "Forbidden"


class NotFoundError(AppError):
    code = "NOT_FOUND"
    http_status = 404
    default_message = "Not found"


class ConflictError(AppError):
    code = "CONFLICT"
    http_status = 409
    default_message = "Conflict"


class IdempotencyConflictError(ConflictError):
    default_message = "idempotency-key reused with different payload"


class IdempotencyInProgressError(ConflictError):
    default_message = "A request with this idempotency-key is still in progress"


class GoneError(AppError):
    code = "GONE"
    http_status = 410
    default_message = "Invitation expired or no longer valid"


class UpstreamError(AppError):
    code = "UPSTREAM_FAILURE"
    http_status = 502
    default_message = "Upstream call failed"


class InternalError(AppError):
    pass
