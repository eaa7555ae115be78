"""
Relay error types.

Every failure is terminal for the request that raised it. Route handlers
catch RelayError and render it with `to_payload`; anything else becomes a
generic 500 at the handler boundary.
"""

from __future__ import annotations

from typing import Any


class RelayError(Exception):
    status_code = 500

    def __init__(self, message: str, status_code: int | None = None, **extra: Any) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.extra = extra

    def to_payload(self, flag: str = "ok") -> dict[str, Any]:
        return {flag: False, "error": self.message, **self.extra}


class MissingFieldError(RelayError):
    status_code = 400

    def __init__(self, field: str, message: str | None = None) -> None:
        super().__init__(message or f"Missing {field}")
        self.field = field


class MissingCredentialError(RelayError):
    status_code = 400

    def __init__(self, message: str, hint: str) -> None:
        super().__init__(message, hint=hint)
        self.hint = hint


class VendorHTTPError(RelayError):
    """Vendor answered with a non-2xx status."""

    status_code = 502
