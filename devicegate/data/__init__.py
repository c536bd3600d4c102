# DeviceGate - Device Session Admission & Consistency Engine
# Copyright (c) 2026 George Scott Foley
# ORCID: 0009-0006-4957-0540
# Email: Georgescottfoley@proton.me
# Licensed under the MIT License - see LICENSE file for details

"""
Data layer for DeviceGate.

Provides database engine management, ORM models, and the repository pattern
for the identity (device index) and session stores. Supports both PostgreSQL
(production) and SQLite (development/tests) via SQLAlchemy async.
"""

from .database import Database
from .models import Base, IdentityModel, Platform, SessionRecordModel, as_utc
from .repositories import IdentityRepository, SessionRepository

__all__ = [
    # Engine lifecycle
    "Database",
    # ORM models
    "Base",
    "IdentityModel",
    "SessionRecordModel",
    "Platform",
    "as_utc",
    # Repositories
    "IdentityRepository",
    "SessionRepository",
]
