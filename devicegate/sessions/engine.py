# DeviceGate - Device Session Admission & Consistency Engine
# Copyright (c) 2026 George Scott Foley
# ORCID: 0009-0006-4957-0540
# Email: Georgescottfoley@proton.me
# Licensed under the MIT License - see LICENSE file for details

"""
Session Engine

Public operations of DeviceGate:

- login: admit a device (evicting one if the limit requires it) and issue tokens
- renew: mint a fresh access token from a live refresh token
- authenticate: resolve an access token to a live device session
- revoke_device / revoke_all_devices / terminate_session: log devices out
- list_active_sessions / get_session / get_device_session: read sessions
- reconcile / reconcile_all: repair device index drift

Stores are injected through the Database; the engine holds no locks.
Mutations that lose a store race, reconciliation included, are retried from
a fresh snapshot.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from ..core.exceptions import (
    AccessForbidden,
    AuthenticationError,
    DeviceGateError,
    DeviceLimitUnsatisfiable,
    DeviceNotFound,
    IdentityNotFound,
    InvalidRequest,
    InvalidToken,
    RevokedRefreshToken,
    SessionNotFound,
    SessionReconciliationRequired,
    SessionWriteFailed,
)
from ..core.settings import Settings, get_settings
from ..data.database import Database
from ..data.models import IdentityModel, Platform, SessionRecordModel, as_utc
from ..observability.logging import audit_logger, get_logger, session_context
from ..observability.metrics import MetricsRegistry, get_metrics
from .admission import AdmissionController, AdmissionRequest, MutationPlan
from .reconciler import ReconcileResult, Reconciler, SweepResult
from .tokens import TokenIssuer
from .transactions import Transaction, TransactionCoordinator

logger = get_logger(__name__)


# ============================================================
# RESULT TYPES
# ============================================================


@dataclass(frozen=True)
class LoginResult:
    access_token: str
    refresh_token: str
    session_id: str
    device: str
    evicted_device: str | None = None


@dataclass(frozen=True)
class RenewResult:
    access_token: str
    refresh_token: str
    session_id: str


@dataclass(frozen=True)
class ActiveSession:
    device: str
    device_agent: str
    platform: Platform
    login_at: datetime

    @classmethod
    def from_record(cls, record: SessionRecordModel) -> "ActiveSession":
        return cls(
            device=record.device,
            device_agent=record.device_agent,
            platform=Platform(record.platform),
            login_at=as_utc(record.login_at),
        )


@dataclass(frozen=True)
class AuthenticatedDevice:
    """Who an access token speaks for, once its session is confirmed live."""

    identity: str
    device: str
    platform: Platform
    for_system: bool
    session_id: str


# ============================================================
# ENGINE
# ============================================================


class SessionEngine:
    """
    Device session admission and consistency engine.

    Usage:
        db = Database(settings.database)
        engine = SessionEngine(db, settings)

        result = await engine.login(user_id, "device-1", "Pixel 8", "10.0.0.1", Platform.APP)
        renewed = await engine.renew(result.refresh_token, user_id)
        await engine.revoke_device(user_id, "device-1")
    """

    def __init__(
        self,
        database: Database,
        settings: Settings | None = None,
        issuer: TokenIssuer | None = None,
        metrics: MetricsRegistry | None = None,
    ):
        self.settings = settings or get_settings()
        session_settings = self.settings.session

        self.database = database
        self.issuer = issuer or TokenIssuer(self.settings.security)
        self.metrics = metrics or get_metrics()
        self.rotate_refresh_tokens = session_settings.rotate_refresh_tokens
        self.reconcile_batch_size = session_settings.reconcile_batch_size

        self.coordinator = TransactionCoordinator(
            database.session_factory,
            timeout_seconds=session_settings.transaction_timeout_seconds,
            metrics=self.metrics,
            retries=session_settings.write_retries,
        )
        self.admission = AdmissionController(
            device_limit=session_settings.device_limit,
            eviction_threshold=timedelta(hours=session_settings.eviction_inactivity_threshold_hours),
        )
        self.reconciler = Reconciler(self.coordinator, metrics=self.metrics)

    # ------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------

    @staticmethod
    async def _require_identity(txn: Transaction, user_id: str) -> IdentityModel:
        identity = await txn.identities.get(user_id)
        if identity is None:
            raise IdentityNotFound("Identity not found", identity=user_id)
        return identity

    @staticmethod
    def _platform(value: Platform | str, identity: str, device: str) -> Platform:
        try:
            return Platform(value)
        except ValueError:
            raise InvalidRequest(
                f"Unknown platform {value!r}, expected one of {[p.value for p in Platform]}",
                field="platform",
                value=value,
                identity=identity,
                device=device,
            ) from None

    async def _reconcile_after_drift(self, user_id: str) -> None:
        try:
            result = await self.reconciler.reconcile(user_id)
        except DeviceGateError as e:
            logger.error(f"Reconcile after index drift failed for identity {user_id}: {e.message}")
            return
        logger.warning(
            f"Index drift repaired for identity {user_id}: removed={result.invalid_devices} "
            f"restored={result.restored_devices}"
        )

    # ------------------------------------------------------------
    # Login
    # ------------------------------------------------------------

    async def login(
        self,
        identity: str,
        device: str,
        device_agent: str,
        ip: str,
        platform: Platform | str,
        for_system: bool | None = None,
        revoke_device: str | None = None,
    ) -> LoginResult:
        """
        Admit a device for an identity and issue its token pair.

        Re-login from a known device refreshes that session in place. A new
        device beyond the limit evicts one session (inactive first, else the
        oldest). ``revoke_device`` drops a named device in the same write
        instead of evicting.

        Args:
            identity: Identity id
            device: Requesting device id
            device_agent: Client description stored in the device index
            ip: Client address
            platform: APP, WEB or PANEL
            for_system: Token scope; defaults to the identity's own flag
            revoke_device: Device to log out as part of this login

        Returns:
            LoginResult with the token pair and session id

        Raises:
            InvalidRequest: Unknown platform
            IdentityNotFound: No such identity
            DeviceNotFound: revoke_device is not logged in
            SessionReconciliationRequired: Limit exceeded because of index drift
            DeviceLimitUnsatisfiable: Limit configured below one
            SessionWriteFailed: The write failed after retries
        """
        request = AdmissionRequest(
            identity=identity,
            device=device,
            device_agent=device_agent,
            ip=ip,
            platform=self._platform(platform, identity, device),
            revoke_device=revoke_device,
        )

        async def work(txn: Transaction) -> tuple[MutationPlan, str]:
            profile = await self._require_identity(txn, identity)
            live = await txn.sessions.list_live(identity)
            plan = self.admission.decide(request, profile, live, datetime.now(UTC))

            scope = profile.for_system if for_system is None else for_system
            plan = plan.with_tokens(self.issuer.issue(identity, device, plan.platform, scope))
            record = await self.coordinator.apply(txn, profile, plan)
            return plan, record.id

        with session_context(identity, device):
            try:
                plan, session_id = await self.coordinator.run_with_retry(
                    work, operation="login", user_id=identity, device=device
                )
            except SessionReconciliationRequired:
                self.metrics.record_admission("rejected", request.platform.value)
                await self._reconcile_after_drift(identity)
                raise
            except DeviceLimitUnsatisfiable:
                self.metrics.record_admission("rejected", request.platform.value)
                raise
            except SessionWriteFailed:
                self.metrics.record_admission("failed", request.platform.value)
                raise

            outcome = "new_device" if plan.is_new_device else "relogin"
            self.metrics.record_admission(outcome, request.platform.value)
            audit_logger.login(
                identity,
                device,
                {"platform": request.platform.value, "ip": ip, "outcome": outcome},
            )

            if revoke_device is not None and revoke_device in plan.removed_devices:
                self.metrics.record_revocation("device")
                audit_logger.revoke(identity, revoke_device, {"during": "login"})

            evicted = None
            if plan.eviction is not None:
                evicted = plan.eviction.device
                self.metrics.record_eviction(plan.eviction.policy)
                audit_logger.evict(
                    identity,
                    evicted,
                    {
                        "policy": plan.eviction.policy,
                        "login_at": plan.eviction.login_at.isoformat(),
                    },
                )

        return LoginResult(
            access_token=plan.access_token,
            refresh_token=plan.refresh_token,
            session_id=session_id,
            device=device,
            evicted_device=evicted,
        )

    # ------------------------------------------------------------
    # Renewal and authentication
    # ------------------------------------------------------------

    async def renew(self, refresh_token: str, identity: str) -> RenewResult:
        """
        Issue a new access token for a live refresh token.

        The refresh token stays the same unless refresh token rotation is
        enabled. The device count never changes.

        Raises:
            ExpiredToken: Refresh token expired
            InvalidToken: Refresh token invalid or issued to another identity
            RevokedRefreshToken: The device was logged out or re-logged in since
            SessionWriteFailed: The write failed after retries
        """
        try:
            claims = self.issuer.validate_refresh(refresh_token)
        except AuthenticationError:
            self.metrics.record_renewal("invalid")
            raise

        if claims.identity != identity:
            self.metrics.record_renewal("invalid")
            raise InvalidToken(
                "Refresh token was not issued to this identity",
                identity=identity,
                device=claims.device,
            )

        async def work(txn: Transaction) -> RenewResult:
            record = await txn.sessions.get_device_session(identity, claims.device)
            if record is None or not record.is_live or record.refresh_token != refresh_token:
                raise RevokedRefreshToken(identity=identity, device=claims.device)

            if self.rotate_refresh_tokens:
                pair = self.issuer.issue(
                    identity, claims.device, claims.platform, claims.for_system
                )
                await txn.sessions.update_tokens(record, pair.access_token, pair.refresh_token)
            else:
                access_token = self.issuer.issue_access(
                    identity, claims.device, claims.platform, claims.for_system
                )
                await txn.sessions.update_tokens(record, access_token)

            return RenewResult(
                access_token=record.access_token,
                refresh_token=record.refresh_token,
                session_id=record.id,
            )

        with session_context(identity, claims.device):
            try:
                result = await self.coordinator.run_with_retry(
                    work, operation="renew", user_id=identity, device=claims.device
                )
            except RevokedRefreshToken:
                self.metrics.record_renewal("revoked")
                raise

            self.metrics.record_renewal("ok")
            audit_logger.renew(identity, claims.device, {"rotated": self.rotate_refresh_tokens})
        return result

    async def authenticate(self, access_token: str, for_system: bool | None = None) -> AuthenticatedDevice:
        """
        Resolve an access token to a live device session.

        Args:
            access_token: Bearer access token
            for_system: Required identity scope; None accepts either

        Raises:
            ExpiredToken / InvalidToken: Token rejected by the issuer
            AccessForbidden: Identity scope does not match ``for_system``
            SessionNotFound: Identity gone or the device was logged out
            TransactionAborted: The session store could not be read
        """
        claims = self.issuer.validate_access(access_token)

        async def work(txn: Transaction) -> AuthenticatedDevice:
            profile = await txn.identities.get(claims.identity)
            if profile is None:
                raise SessionNotFound(
                    "No account found for this token", identity=claims.identity
                )

            if for_system is not None and profile.for_system != for_system:
                raise AccessForbidden(
                    "Access restricted for this account type",
                    identity=claims.identity,
                    device=claims.device,
                    for_system=for_system,
                )

            record = await txn.sessions.get_device_session(claims.identity, claims.device)
            if record is None or not record.is_live:
                raise SessionNotFound(
                    "Device is not logged in",
                    identity=claims.identity,
                    device=claims.device,
                )

            return AuthenticatedDevice(
                identity=claims.identity,
                device=claims.device,
                platform=claims.platform,
                for_system=profile.for_system,
                session_id=record.id,
            )

        return await self.coordinator.run(work, operation="authenticate", user_id=claims.identity)

    # ------------------------------------------------------------
    # Revocation
    # ------------------------------------------------------------

    async def revoke_device(self, identity: str, device: str) -> None:
        """
        Log one device out, removing its record and index entry together.

        Index entries without a live record are swept in the same write.

        Raises:
            IdentityNotFound: No such identity
            DeviceNotFound: Neither a record nor an index entry exists for the device
            SessionWriteFailed: The write failed after retries
        """

        async def work(txn: Transaction) -> int:
            profile = await self._require_identity(txn, identity)
            record = await txn.sessions.get_device_session(identity, device)
            if record is None and device not in (profile.device_index or {}):
                raise DeviceNotFound("Device is not logged in", identity=identity, device=device)
            return await self.coordinator.remove_devices(txn, profile, [device])

        with session_context(identity, device):
            deleted = await self.coordinator.run_with_retry(
                work, operation="revoke_device", user_id=identity, device=device
            )
            self.metrics.record_revocation("device", deleted)
            audit_logger.revoke(identity, device)

    async def revoke_all_devices(self, identity: str) -> int:
        """
        Log every device of an identity out.

        Returns:
            Number of session records deleted

        Raises:
            IdentityNotFound: No such identity
            SessionWriteFailed: The write failed after retries
        """

        async def work(txn: Transaction) -> int:
            profile = await self._require_identity(txn, identity)
            deleted = await txn.sessions.delete_all(identity)
            await txn.identities.update_device_index(profile, {})
            return deleted

        with session_context(identity):
            terminated = await self.coordinator.run_with_retry(
                work, operation="revoke_all_devices", user_id=identity
            )
            self.metrics.record_revocation("all", terminated)
            audit_logger.revoke(identity, None, {"terminated_count": terminated})
        return terminated

    async def terminate_session(self, session_id: str) -> None:
        """
        Log out the session with this id.

        Raises:
            SessionNotFound: No session with this id
            SessionWriteFailed: The write failed after retries
        """
        record = await self.get_session(session_id)
        user_id, device = record.user_id, record.device

        async def work(txn: Transaction) -> int:
            profile = await self._require_identity(txn, user_id)
            current = await txn.sessions.get_by_id(session_id)
            if current is None:
                raise SessionNotFound(
                    "Session not found", identity=user_id, device=device, session_id=session_id
                )
            return await self.coordinator.remove_devices(txn, profile, [device])

        with session_context(user_id, device):
            await self.coordinator.run_with_retry(
                work, operation="terminate_session", user_id=user_id, device=device
            )
            self.metrics.record_revocation("session")
            audit_logger.revoke(user_id, device, {"session_id": session_id})

    # ------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------

    async def list_active_sessions(self, identity: str) -> list[ActiveSession]:
        """Live sessions of an identity, oldest login first."""
        async def work(txn: Transaction) -> list[ActiveSession]:
            return [ActiveSession.from_record(r) for r in await txn.sessions.list_live(identity)]

        return await self.coordinator.run(work, operation="list_active_sessions", user_id=identity)

    async def get_session(self, session_id: str) -> SessionRecordModel:
        """
        Raises:
            SessionNotFound: No session with this id
        """
        async def work(txn: Transaction) -> SessionRecordModel | None:
            return await txn.sessions.get_by_id(session_id)

        record = await self.coordinator.run(work, operation="get_session")
        if record is None:
            raise SessionNotFound("Session not found", session_id=session_id)
        return record

    async def get_device_session(self, identity: str, device: str) -> SessionRecordModel | None:
        async def work(txn: Transaction) -> SessionRecordModel | None:
            return await txn.sessions.get_device_session(identity, device)

        return await self.coordinator.run(work, operation="get_device_session", user_id=identity)

    # ------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------

    async def reconcile(self, identity: str) -> ReconcileResult:
        """
        Repair the device index of one identity from its live sessions.

        Raises:
            IdentityNotFound: No such identity
            SessionWriteFailed: The repair lost every retry to concurrent writes
        """
        with session_context(identity):
            return await self.reconciler.reconcile(identity)

    async def reconcile_all(self, batch_size: int | None = None) -> SweepResult:
        """Repair the device index of every identity."""
        return await self.reconciler.reconcile_all(batch_size or self.reconcile_batch_size)


__all__ = [
    "LoginResult",
    "RenewResult",
    "ActiveSession",
    "AuthenticatedDevice",
    "SessionEngine",
]
