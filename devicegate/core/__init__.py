# DeviceGate - Device Session Admission & Consistency Engine
# Copyright (c) 2026 George Scott Foley
# ORCID: 0009-0006-4957-0540
# Email: Georgescottfoley@proton.me
# Licensed under the MIT License - see LICENSE file for details

"""Settings and the exception hierarchy shared by every DeviceGate module."""

from .exceptions import (
    AccessForbidden,
    AuthenticationError,
    ConfigurationError,
    ConsistencyError,
    DeviceGateError,
    DeviceLimitUnsatisfiable,
    DeviceNotFound,
    ExpiredToken,
    IdentityNotFound,
    InvalidRequest,
    InvalidToken,
    NotFoundError,
    RevokedRefreshToken,
    SessionNotFound,
    SessionReconciliationRequired,
    SessionWriteFailed,
    TransactionAborted,
    WriteConflict,
)
from .settings import (
    DatabaseSettings,
    ObservabilitySettings,
    SecuritySettings,
    SessionSettings,
    Settings,
    get_settings,
)

__all__ = [
    "Settings",
    "DatabaseSettings",
    "SecuritySettings",
    "SessionSettings",
    "ObservabilitySettings",
    "get_settings",
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
