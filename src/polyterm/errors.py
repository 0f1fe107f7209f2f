"""Error taxonomy shared by the fetch layer and the HTTP handlers.

Each error carries the HTTP status it maps to and a machine-readable code, so
handlers can turn any of them into a ``{success: false, error, code}`` body.
Partial fan-out results are not errors; they surface as defaulted fields.
"""

from __future__ import annotations

from typing import Any


class PolytermError(Exception):
    """Base class for errors surfaced to API clients."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}


class ValidationError(PolytermError):
    """Malformed client input (bad address, bad parameter)."""

    status_code = 400
    code = "validation_error"


class NotFound(PolytermError):
    """Entity absent after every fallback strategy was tried."""

    status_code = 404
    code = "not_found"


class UpstreamError(PolytermError):
    """An upstream call failed. Callers treat this as 'try the next strategy'."""

    code = "upstream_error"

    def __init__(
        self,
        message: str,
        *,
        url: str | None = None,
        status: int | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, context=context)
        self.url = url
        self.status = status


class UpstreamUnavailable(UpstreamError):
    """Network failure or non-2xx response."""

    code = "upstream_unavailable"


class UpstreamMalformed(UpstreamError):
    """Response body was not the JSON shape we expected."""

    code = "upstream_malformed"
