"""
DeviceGate Test Suite - Shared Fixtures
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio

from devicegate.core.settings import (
    DatabaseSettings,
    SecuritySettings,
    SessionSettings,
    Settings,
)
from devicegate.data import Database, IdentityRepository, SessionRepository
from devicegate.observability.metrics import MetricsRegistry
from devicegate.sessions import SessionEngine, TokenIssuer

ACCESS_SECRET = "t3st-Access-9fKq2LmZ8vR4xY7wB1nC6dE0gH5jU"
REFRESH_SECRET = "t3st-Refresh-Qp4Wz7Ks1Nd8Rb3Vm6Xc0Lf5Hg2T"


@pytest.fixture
def security_settings():
    return SecuritySettings(
        access_token_secret=ACCESS_SECRET,
        refresh_token_secret=REFRESH_SECRET,
    )


@pytest.fixture
def settings(tmp_path, security_settings):
    """Deterministic settings with a file-backed SQLite database per test."""
    return Settings(
        database=DatabaseSettings(url=f"sqlite+aiosqlite:///{tmp_path / 'devicegate.db'}"),
        security=security_settings,
        session=SessionSettings(device_limit=5, eviction_inactivity_threshold_hours=24),
    )


@pytest.fixture
def issuer(security_settings):
    return TokenIssuer(security_settings)


@pytest.fixture
def metrics():
    return MetricsRegistry(namespace="devicegate_test")


@pytest_asyncio.fixture
async def database(settings):
    db = Database(settings.database)
    await db.create_schema()
    yield db
    await db.close()


@pytest_asyncio.fixture
async def engine(database, settings, issuer, metrics):
    return SessionEngine(database, settings, issuer=issuer, metrics=metrics)


@pytest.fixture
def make_identity(database):
    """Create an identity with an empty device index."""

    async def _make(identity_id: str | None = None, for_system: bool = False) -> str:
        async with database.session_factory() as session:
            async with session.begin():
                identity = await IdentityRepository(session).create(
                    identity_id=identity_id, for_system=for_system
                )
                return identity.id

    return _make


@pytest_asyncio.fixture
async def user_id(make_identity):
    return await make_identity()


@pytest.fixture
def seed_sessions(database):
    """
    Write live sessions (and matching index entries) with chosen login times.

    Usage:
        await seed_sessions(user_id, {"phone": timedelta(hours=30)})
    """

    async def _seed(user_id: str, ages: dict[str, timedelta], now: datetime | None = None):
        now = now or datetime.now(UTC)
        async with database.session_factory() as session:
            async with session.begin():
                identities = IdentityRepository(session)
                sessions = SessionRepository(session)
                identity = await identities.get(user_id)
                index = dict(identity.device_index or {})
                for device, age in ages.items():
                    await sessions.upsert(
                        user_id=user_id,
                        device=device,
                        device_agent=f"agent-{device}",
                        ip="10.0.0.1",
                        platform="APP",
                        access_token="seeded-access",
                        refresh_token="seeded-refresh",
                        login_at=now - age,
                    )
                    index[device] = f"agent-{device}"
                await identities.update_device_index(identity, index)

    return _seed


@dataclass
class StoreState:
    index: dict[str, str]
    live_devices: set[str]
    revision: int

    @property
    def mirrored(self) -> bool:
        return set(self.index) == self.live_devices


@pytest.fixture
def store_state(database):
    """Read the device index and live session devices for an identity."""

    async def _state(user_id: str) -> StoreState:
        async with database.session_factory() as session:
            identity = await IdentityRepository(session).get(user_id)
            live = await SessionRepository(session).list_live(user_id)
            return StoreState(
                index=dict(identity.device_index or {}),
                live_devices={r.device for r in live},
                revision=identity.revision,
            )

    return _state


@pytest.fixture
def corrupt_index(database):
    """Overwrite an identity's device index directly, bypassing the engine."""

    async def _corrupt(user_id: str, index: dict[str, str]) -> None:
        async with database.session_factory() as session:
            async with session.begin():
                repo = IdentityRepository(session)
                identity = await repo.get(user_id)
                await repo.update_device_index(identity, index)

    return _corrupt
