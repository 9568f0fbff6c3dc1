"""
Tagged service results.

Services never raise for expected domain outcomes. They return ``Ok(value)``
or ``Err(kind, message, ...)`` and the route layer maps the kind to an HTTP
status in one place (``dietpanel.api.errors.raise_for_err``).
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar, Union

T = TypeVar("T")


class ErrorKind(str, Enum):
    validation = "validation"
    unauthenticated = "unauthenticated"
    forbidden = "forbidden"
    not_found = "not_found"
    conflict = "conflict"
    rate_limited = "rate_limited"
    external_service = "external_service"
    unexpected = "unexpected"


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    """
    A domain failure.

    Attributes:
        kind: failure family, decides the HTTP status
        message: user-facing message
        code: machine-readable error code; defaults to the kind's code
        reason: discriminant for forbidden outcomes (e.g. "no_module_access")
        details: extra structured data for the client
    """
    kind: ErrorKind
    message: str
    code: str | None = None
    reason: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok[T], Err]
