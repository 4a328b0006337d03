"""Exception hierarchy for the irrigation coordinator.

Every error raised by the core services inherits from :class:`FieldFlowError`
so the HTTP layer (see ``fieldflow/utils/http.safe_route``) can map it to a
status code, while callers can still match on the narrow subclass.

Hierarchy
---------
::

    FieldFlowError (base, maps to 500)
    ├── ValidationError          (400, bad input from caller)
    │   └── ParseError           (400, malformed inbound device message)
    ├── NotFoundError            (404, unknown device or session)
    ├── ConflictError            (409, session already active for device)
    ├── ServiceError             (500, business-logic failure)
    │   └── RepositoryError      (500, persistence failure)
    ├── DispatchError            (503, command could not be handed to the broker)
    └── ConfigurationError       (500, missing / invalid config)
"""

from __future__ import annotations


class FieldFlowError(Exception):
    """Base exception for all FieldFlow errors.

    Parameters
    ----------
    message:
        Human-readable description (logged server-side; only surfaced to
        HTTP clients for 4xx classes).
    detail:
        Optional machine-readable context attached for structured logging.
    """

    http_status: int = 500

    def __init__(self, message: str = "", *, detail: dict | None = None) -> None:
        super().__init__(message)
        self.detail = detail or {}


# ── Client errors (4xx) ──────────────────────────────────────────────


class ValidationError(FieldFlowError):
    """Caller supplied invalid input, e.g. a duration outside 1..120 (HTTP 400)."""

    http_status: int = 400


class ParseError(ValidationError):
    """Inbound device message could not be decoded or validated."""


class NotFoundError(FieldFlowError):
    """Device or active session does not exist (HTTP 404)."""

    http_status: int = 404


class ConflictError(FieldFlowError):
    """A non-terminal session already exists for the device (HTTP 409)."""

    http_status: int = 409


# ── Server errors (5xx) ──────────────────────────────────────────────


class ServiceError(FieldFlowError):
    """Business-logic failure in a service method (HTTP 500)."""

    http_status: int = 500


class RepositoryError(ServiceError):
    """Database / persistence layer failure (HTTP 500)."""

    http_status: int = 500


class DispatchError(FieldFlowError):
    """A device command could not be accepted for transmission (HTTP 503)."""

    http_status: int = 503


class ConfigurationError(FieldFlowError):
    """Missing or invalid application configuration (HTTP 500)."""

    http_status: int = 500
