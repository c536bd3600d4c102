# DeviceGate - Device Session Admission & Consistency Engine
# Copyright (c) 2026 George Scott Foley
# ORCID: 0009-0006-4957-0540
# Email: Georgescottfoley@proton.me
# Licensed under the MIT License - see LICENSE file for details

"""
Repository pattern for the identity and session stores.

Every repository is constructed with an AsyncSession and provides typed
query methods. Repositories never commit; the transaction coordinator owns
the transaction boundary.
"""

from collections.abc import Iterable, Sequence
from datetime import UTC, datetime

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from ..core.exceptions import WriteConflict
from .models import IdentityModel, SessionRecordModel


def _utcnow() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# IdentityRepository
# ---------------------------------------------------------------------------


class IdentityRepository:
    """Profile store access: identity lookup and device index writes."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        identity_id: str | None = None,
        for_system: bool = False,
    ) -> IdentityModel:
        identity = IdentityModel(for_system=for_system, device_index={}, revision=0)
        if identity_id:
            identity.id = identity_id
        self.session.add(identity)
        await self.session.flush()
        return identity

    async def get(self, identity_id: str) -> IdentityModel | None:
        result = await self.session.execute(
            select(IdentityModel).where(IdentityModel.id == identity_id)
        )
        return result.scalar_one_or_none()

    async def list_ids(self, after: str | None = None, limit: int = 500) -> list[str]:
        """Keyset-paginated identity ids, for maintenance sweeps."""
        query = select(IdentityModel.id).order_by(IdentityModel.id).limit(limit)
        if after is not None:
            query = query.where(IdentityModel.id > after)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def update_device_index(self, identity: IdentityModel, index: dict[str, str]) -> int:
        """
        Replace the identity's device index.

        The write only lands if nobody else wrote the index since this
        transaction read it (compare-and-swap on ``revision``).

        Returns:
            The new revision

        Raises:
            WriteConflict: A concurrent transaction updated the index first
        """
        seen = identity.revision
        result = await self.session.execute(
            update(IdentityModel)
            .where(IdentityModel.id == identity.id, IdentityModel.revision == seen)
            .values(device_index=dict(index), revision=seen + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise WriteConflict(
                "Device index was modified by a concurrent transaction",
                identity=identity.id,
                expected_revision=seen,
            )

        set_committed_value(identity, "device_index", dict(index))
        set_committed_value(identity, "revision", seen + 1)
        return seen + 1


# ---------------------------------------------------------------------------
# SessionRepository
# ---------------------------------------------------------------------------


class SessionRepository:
    """CRUD for the device_sessions table."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, session_id: str) -> SessionRecordModel | None:
        result = await self.session.execute(
            select(SessionRecordModel).where(SessionRecordModel.id == session_id)
        )
        return result.scalar_one_or_none()

    async def get_device_session(self, user_id: str, device: str) -> SessionRecordModel | None:
        result = await self.session.execute(
            select(SessionRecordModel).where(
                SessionRecordModel.user_id == user_id,
                SessionRecordModel.device == device,
            )
        )
        return result.scalar_one_or_none()

    async def list_live(self, user_id: str) -> Sequence[SessionRecordModel]:
        """Live sessions, oldest login first."""
        result = await self.session.execute(
            select(SessionRecordModel)
            .where(
                SessionRecordModel.user_id == user_id,
                SessionRecordModel.logout_at.is_(None),
            )
            .order_by(SessionRecordModel.login_at, SessionRecordModel.device)
        )
        return result.scalars().all()

    async def upsert(
        self,
        user_id: str,
        device: str,
        device_agent: str,
        ip: str,
        platform: str,
        access_token: str,
        refresh_token: str,
        login_at: datetime | None = None,
    ) -> SessionRecordModel:
        """Create the (user, device) session or refresh the existing one in place."""
        login_at = login_at or _utcnow()
        record = await self.get_device_session(user_id, device)

        if record is None:
            record = SessionRecordModel(
                user_id=user_id,
                device=device,
                created_at=login_at,
            )
            self.session.add(record)

        record.device_agent = device_agent
        record.ip = ip
        record.platform = platform
        record.access_token = access_token
        record.refresh_token = refresh_token
        record.login_at = login_at
        record.logout_at = None

        await self.session.flush()
        return record

    async def update_tokens(
        self,
        record: SessionRecordModel,
        access_token: str,
        refresh_token: str | None = None,
    ) -> SessionRecordModel:
        record.access_token = access_token
        if refresh_token is not None:
            record.refresh_token = refresh_token
        await self.session.flush()
        return record

    async def delete_devices(self, user_id: str, devices: Iterable[str]) -> int:
        devices = list(devices)
        if not devices:
            return 0
        result = await self.session.execute(
            delete(SessionRecordModel)
            .where(
                SessionRecordModel.user_id == user_id,
                SessionRecordModel.device.in_(devices),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def delete_all(self, user_id: str) -> int:
        result = await self.session.execute(
            delete(SessionRecordModel)
            .where(SessionRecordModel.user_id == user_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
