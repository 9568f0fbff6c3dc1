"""
HTTP-facing errors.

``AppError`` is the only exception the route layer raises on purpose; the
handlers in ``dietpanel.main`` turn it into the JSON envelope
``{"data": null, "error": {"code", "message", "details"?}}``.
"""
from __future__ import annotations

from typing import Any, NoReturn

from dietpanel.services.result import Err, ErrorKind

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.validation: 400,
    ErrorKind.unauthenticated: 401,
    ErrorKind.forbidden: 403,
    ErrorKind.not_found: 404,
    ErrorKind.conflict: 409,
    ErrorKind.rate_limited: 429,
    ErrorKind.external_service: 502,
    ErrorKind.unexpected: 500,
}

DEFAULT_CODE_BY_KIND: dict[ErrorKind, str] = {
    ErrorKind.validation: "validation_error",
    ErrorKind.unauthenticated: "unauthorized",
    ErrorKind.forbidden: "forbidden",
    ErrorKind.not_found: "not_found",
    ErrorKind.conflict: "conflict",
    ErrorKind.rate_limited: "rate_limited",
    ErrorKind.external_service: "external_service_error",
    ErrorKind.unexpected: "internal_error",
}


class AppError(Exception):
    """
    Application error with an HTTP status.

    Attributes:
        code: machine-readable error code (e.g. "not_found")
        message: user-facing message
        status_code: HTTP status
        details: optional structured payload; ``reason`` is merged into it

    Example:
        raise AppError(code="forbidden", message="...", status_code=403, reason="no_module_access")
    """

    def __init__(
        self,
        *,
        code: str,
        message: str,
        status_code: int = 400,
        reason: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = dict(details or {})
        if reason is not None:
            self.details["reason"] = reason

    def to_error(self) -> dict[str, Any]:
        error: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            error["details"] = self.details
        return error


def from_err(err: Err) -> AppError:
    return AppError(
        code=err.code or DEFAULT_CODE_BY_KIND[err.kind],
        message=err.message,
        status_code=STATUS_BY_KIND[err.kind],
        reason=err.reason,
        details=err.details,
    )


def raise_for_err(err: Err) -> NoReturn:
    raise from_err(err)


def unauthorized(message: str = "Authentication required") -> AppError:
    return AppError(code="unauthorized", message=message, status_code=401)


def forbidden(reason: str, message: str = "Forbidden") -> AppError:
    return AppError(code="forbidden", message=message, status_code=403, reason=reason)


def not_found(message: str = "Not found") -> AppError:
    return AppError(code="not_found", message=message, status_code=404)
