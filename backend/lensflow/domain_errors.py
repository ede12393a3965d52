"""Domain-level exception primitives with stable machine-readable codes."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(eq=False)
class DomainError(Exception):
    """Use-case level error with stable code and HTTP mapping."""

    code: str
    http_status: int
    message: str
    details: dict[str, Any] | None = None

    def __str__(self) -> str:
        return self.message


class _OrderDomainError(DomainError):
    """DomainError with a per-class default code and fixed HTTP status."""

    default_code = "DOMAIN_ERROR"
    default_status = 400

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            code=code or self.default_code,
            http_status=self.default_status,
            message=message,
            details=details,
        )


class ValidationError(_OrderDomainError):
    """Malformed or missing input; the caller may resubmit."""

    default_code = "VALIDATION_ERROR"
    default_status = 400


class Forbidden(_OrderDomainError):
    """Actor lacks the capability for the requested action."""

    default_code = "FORBIDDEN"
    default_status = 403


class InvalidTransition(_OrderDomainError):
    """Status change not present in the transition table."""

    default_code = "INVALID_TRANSITION"
    default_status = 400


class EditWindowClosed(_OrderDomainError):
    """Edit or production start attempted outside the allowed window."""

    default_code = "EDIT_WINDOW_CLOSED"
    default_status = 400


class NotFound(_OrderDomainError):
    """Unknown (or invisible) order, defect, party or product."""

    default_code = "NOT_FOUND"
    default_status = 404


class Conflict(_OrderDomainError):
    """Concurrent modification; safe to retry after re-reading."""

    default_code = "CONFLICT"
    default_status = 409


class UpstreamUnavailable(_OrderDomainError):
    """Catalog or persistence dependency failure; retry with backoff."""

    default_code = "UPSTREAM_UNAVAILABLE"
    default_status = 503
