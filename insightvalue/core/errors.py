"""Domain error hierarchy shared by services and controllers."""

from __future__ import annotations

from typing import Optional


class DomainError(ValueError):
    """Base class for errors raised deliberately by the service layer."""

    code = "domain_error"
    status_code = 400

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        field: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.field = field
        if code:
            self.code = code

    def to_dict(self) -> dict:
        payload = {"ok": False, "error": self.code, "message": self.message}
        if self.field:
            payload["field"] = self.field
        return payload


class ValidationError(DomainError):
    """Malformed input rejected before any mutation."""

    code = "validation_error"
    status_code = 400


class NotFoundError(DomainError):
    """Reference to an unknown insight, rule, channel, point or fact."""

    code = "not_found"
    status_code = 404


class InfrastructureError(DomainError):
    """Persistence failure surfaced to the caller; never retried internally."""

    code = "storage_unavailable"
    status_code = 503


__all__ = ["DomainError", "ValidationError", "NotFoundError", "InfrastructureError"]
