# DeviceGate - Device Session Admission & Consistency Engine
# Copyright (c) 2026 George Scott Foley
# ORCID: 0009-0006-4957-0540
# Email: Georgescottfoley@proton.me
# Licensed under the MIT License - see LICENSE file for details

"""
DeviceGate - Device Session Admission & Consistency Engine

Issues, tracks, bounds and revokes per-device sessions for user identities.
The canonical session store and the identity's device index are always
mutated together in one transaction; the reconciler repairs any drift.

Quick Start:
    from devicegate import Database, SessionEngine, get_settings

    settings = get_settings()
    db = Database(settings.database)
    await db.create_schema()

    engine = SessionEngine(db, settings)
    result = await engine.login(user_id, "device-1", "Pixel 8", "10.0.0.1", "APP")

Architecture:

    login / renew / revoke
            |
      SessionEngine ---- TokenIssuer (PyJWT)
            |
    AdmissionController (device limit, eviction)
            |
    TransactionCoordinator (one transaction, both stores)
         /          \\
    device_sessions   identities.device_index
            \\        /
             Reconciler
"""

__version__ = "1.0.0"

from .core import (
    DeviceGateError,
    Settings,
    get_settings,
)
from .data import Database, Platform
from .sessions import (
    ActiveSession,
    AdmissionController,
    LoginResult,
    Reconciler,
    ReconcileResult,
    RenewResult,
    SessionEngine,
    SweepResult,
    TokenIssuer,
    TransactionCoordinator,
)

__all__ = [
    "__version__",
    "Settings",
    "get_settings",
    "DeviceGateError",
    "Database",
    "Platform",
    "SessionEngine",
    "LoginResult",
    "RenewResult",
    "ActiveSession",
    "ReconcileResult",
    "SweepResult",
    "TokenIssuer",
    "AdmissionController",
    "TransactionCoordinator",
    "Reconciler",
]
