# DeviceGate - Device Session Admission & Consistency Engine
# Copyright (c) 2026 George Scott Foley
# ORCID: 0009-0006-4957-0540
# Email: Georgescottfoley@proton.me
# Licensed under the MIT License - see LICENSE file for details

"""
SQLAlchemy ORM models.

- identities: the profile store's identity record, of which the engine
  only touches ``device_index`` (device -> device agent) and ``revision``
- device_sessions: canonical session records, one row per (user, device)

Uses sa.JSON instead of postgresql.JSON for SQLite compatibility.
UUID columns use String(36) so the same models run on SQLite.
"""

import uuid
from datetime import UTC, datetime
from enum import StrEnum

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
)


def _new_uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; everything stored here is UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


class Platform(StrEnum):
    """Client platform a session was opened from."""

    APP = "APP"
    WEB = "WEB"
    PANEL = "PANEL"


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class IdentityModel(Base):
    __tablename__ = "identities"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_uuid)
    for_system: Mapped[bool] = mapped_column(Boolean, default=False)
    # Denormalized mirror of live device_sessions rows
    device_index: Mapped[dict] = mapped_column(JSON, default=dict)
    # Bumped on every device_index write; guards against lost updates
    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<Identity {self.id} devices={len(self.device_index or {})}>"


class SessionRecordModel(Base):
    __tablename__ = "device_sessions"
    __table_args__ = (
        UniqueConstraint("user_id", "device", name="unique_user_session"),
        Index("idx_device_sessions_user_login", "user_id", "login_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_uuid)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("identities.id", ondelete="CASCADE"), nullable=False
    )
    device: Mapped[str] = mapped_column(String(255), nullable=False)
    device_agent: Mapped[str] = mapped_column(String(500), nullable=False)
    ip: Mapped[str] = mapped_column(String(45), nullable=False)
    platform: Mapped[str] = mapped_column(String(10), nullable=False)
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[str] = mapped_column(Text, nullable=False)
    login_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    logout_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    @property
    def is_live(self) -> bool:
        return self.logout_at is None

    def __repr__(self) -> str:
        return f"<SessionRecord {self.user_id}/{self.device} ({self.platform})>"
