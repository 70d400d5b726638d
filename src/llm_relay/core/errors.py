"""Gateway error taxonomy."""

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Caller-visible error categories."""

    VALIDATION = "validation"
    POLICY = "policy"
    UNROUTABLE = "unroutable"
    UPSTREAM_EXHAUSTED = "upstream_exhausted"
    INTERNAL = "internal"


STATUS_CODES: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.POLICY: 403,
    ErrorKind.UNROUTABLE: 400,
    ErrorKind.UPSTREAM_EXHAUSTED: 502,
    ErrorKind.INTERNAL: 500,
}


class GatewayError(Exception):
    """Error that ends a request with a caller-visible response."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        errors: list[str] | None = None,
        status_code: int | None = None,
    ) -> None:
        """Initialize error.

        Args:
            kind: Error category
            message: Human-readable message shown to the caller
            errors: Individual violations (validation errors)
            status_code: Override for the kind's default status
        """
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.errors = list(errors or [])
        self._status_code = status_code

    @property
    def status_code(self) -> int:
        """HTTP status for this error."""
        if self._status_code is not None:
            return self._status_code
        return STATUS_CODES[self.kind]

    def to_dict(self) -> dict[str, Any]:
        """Render the caller-facing JSON body."""
        error: dict[str, Any] = {"message": self.message, "type": self.kind.value}
        if self.errors:
            error["errors"] = self.errors
        return {"error": error}


class UpstreamAttemptError(Exception):
    """A single provider attempt failed; recovered by failover."""

    def __init__(self, provider: str, reason: str) -> None:
        super().__init__(f"{provider}: {reason}")
        self.provider = provider
        self.reason = reason
