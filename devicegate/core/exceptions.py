# DeviceGate - Device Session Admission & Consistency Engine
# Copyright (c) 2026 George Scott Foley
# ORCID: 0009-0006-4957-0540
# Email: Georgescottfoley@proton.me
# Licensed under the MIT License - see LICENSE file for details

"""
Exception Hierarchy

Structured exceptions for the session engine.
All exceptions include context via `details` dict, plus a stable
`error_code` and the HTTP status an adapter layer should answer with.
"""

from typing import Any


class DeviceGateError(Exception):
    """
    Base exception for all DeviceGate errors.

    Attributes:
        message: Human-readable error message
        details: Additional context as key-value pairs (identity, device, ...)
    """

    error_code: str = "INTERNAL_SERVER_ERROR"
    status_code: int = 500
    retryable: bool = False

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error": self.__class__.__name__,
            "code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


def _context(identity: str | None, device: str | None, **kwargs) -> dict[str, Any]:
    details = dict(kwargs.pop("details", None) or {})
    if identity is not None:
        details["identity"] = identity
    if device is not None:
        details["device"] = device
    details.update({k: v for k, v in kwargs.items() if v is not None})
    return details


# ============================================================
# NOT FOUND
# ============================================================


class NotFoundError(DeviceGateError):
    """Base class for missing resources."""

    error_code = "RESOURCE_NOT_FOUND"
    status_code = 404

    def __init__(
        self,
        message: str,
        identity: str | None = None,
        device: str | None = None,
        **kwargs,
    ):
        super().__init__(message, _context(identity, device, **kwargs))


class DeviceNotFound(NotFoundError):
    """No session and no index entry exists for the device."""

    pass


class SessionNotFound(NotFoundError):
    """No live session record matches the lookup."""

    pass


class IdentityNotFound(NotFoundError):
    """The profile store has no identity with this id."""

    pass


# ============================================================
# AUTHENTICATION ERRORS
# ============================================================


class AuthenticationError(DeviceGateError):
    """Base class for errors that require the client to log in again."""

    error_code = "UNAUTHORIZED"
    status_code = 401

    def __init__(
        self,
        message: str = "Unauthorized identity. Please login again.",
        identity: str | None = None,
        device: str | None = None,
        **kwargs,
    ):
        super().__init__(message, _context(identity, device, **kwargs))


class ExpiredToken(AuthenticationError):
    """Token signature is valid but it has expired."""

    error_code = "EXPIRED_TOKEN"


class InvalidToken(AuthenticationError):
    """Token is malformed, has a bad signature, or is of the wrong type."""

    error_code = "INVALID_TOKEN"


class RevokedRefreshToken(AuthenticationError):
    """Refresh token no longer matches a live device session."""

    error_code = "REVOKED_REFRESH_TOKEN"


class AccessForbidden(AuthenticationError):
    """Token belongs to an identity of the wrong scope (system vs. client)."""

    error_code = "ACCOUNT_FORBIDDEN"
    status_code = 403


# ============================================================
# CONSISTENCY ERRORS
# ============================================================


class ConsistencyError(DeviceGateError):
    """Base class for session store / device index consistency failures."""

    def __init__(
        self,
        message: str,
        identity: str | None = None,
        device: str | None = None,
        **kwargs,
    ):
        super().__init__(message, _context(identity, device, **kwargs))


class SessionReconciliationRequired(ConsistencyError):
    """The device limit is exceeded but nothing can be evicted (index drift)."""

    error_code = "SESSION_RECONCILIATION_REQUIRED"


class DeviceLimitUnsatisfiable(ConsistencyError):
    """The device count cannot be brought under the configured limit."""

    error_code = "SESSION_LIMIT_EXCEEDED"


class TransactionAborted(ConsistencyError):
    """A store transaction was rolled back; nothing it wrote survives."""

    error_code = "TRANSACTION_ABORTED"
    retryable = True


class WriteConflict(TransactionAborted):
    """A concurrent transaction changed the device index first."""

    error_code = "WRITE_CONFLICT"


class SessionWriteFailed(ConsistencyError):
    """Session mutation failed after retries; safe to resend the request."""

    error_code = "SESSION_WRITE_FAILED"
    status_code = 503
    retryable = True


# ============================================================
# REQUEST ERRORS
# ============================================================


class InvalidRequest(DeviceGateError):
    """A request argument is outside what the engine accepts."""

    error_code = "INVALID_REQUEST"
    status_code = 400

    def __init__(
        self,
        message: str,
        field: str | None = None,
        value: Any = None,
        identity: str | None = None,
        device: str | None = None,
    ):
        super().__init__(message, _context(identity, device, field=field, value=value))


# ============================================================
# CONFIGURATION ERRORS
# ============================================================


class ConfigurationError(DeviceGateError):
    """Invalid configuration."""

    def __init__(self, message: str, setting: str | None = None, **kwargs):
        details = kwargs.get("details", {})
        if setting:
            details["setting"] = setting
        super().__init__(message, details)


__all__ = [
    "DeviceGateError",
    "NotFoundError",
    "DeviceNotFound",
    "SessionNotFound",
    "IdentityNotFound",
    "AuthenticationError",
    "ExpiredToken",
    "InvalidToken",
    "RevokedRefreshToken",
    "AccessForbidden",
    "ConsistencyError",
    "SessionReconciliationRequired",
    "DeviceLimitUnsatisfiable",
    "TransactionAborted",
    "WriteConflict",
    "SessionWriteFailed",
    "InvalidRequest",
    "ConfigurationError",
]
