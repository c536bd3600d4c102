# DeviceGate - Device Session Admission & Consistency Engine
# Copyright (c) 2026 George Scott Foley
# ORCID: 0009-0006-4957-0540
# Email: Georgescottfoley@proton.me
# Licensed under the MIT License - see LICENSE file for details

"""
Transaction Coordinator

Mutates the session store and the device index as one atomic unit. Every
write to either store goes through a coordinator-scoped transaction:

    async with coordinator.transaction() as txn:
        ...  # commit on exit, rollback on any exception

The AsyncSession is released on every exit path. Failures of the store
(driver errors, constraint violations, lost device index races, timeouts)
surface as TransactionAborted. run_with_retry repeats the whole operation
from a fresh snapshot and gives up with SessionWriteFailed.
"""

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.exceptions import SessionWriteFailed, TransactionAborted
from ..data.models import IdentityModel, SessionRecordModel
from ..data.repositories import IdentityRepository, SessionRepository
from ..observability.metrics import MetricsRegistry
from .admission import MutationPlan

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Transaction:
    """One open transaction plus repositories bound to it."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.identities = IdentityRepository(session)
        self.sessions = SessionRepository(session)


class TransactionCoordinator:
    """
    Scoped transactions over both stores.

    Usage:
        coordinator = TransactionCoordinator(db.session_factory, timeout_seconds=10)

        async def work(txn: Transaction):
            identity = await txn.identities.get(user_id)
            ...

        result = await coordinator.run(work, operation="login", user_id=user_id)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        timeout_seconds: float = 10.0,
        metrics: MetricsRegistry | None = None,
        retries: int = 0,
    ):
        self.session_factory = session_factory
        self.timeout_seconds = timeout_seconds
        self.retries = retries
        self.metrics = metrics

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Transaction]:
        """Begin a transaction; commit on clean exit, roll back otherwise."""
        async with self.session_factory() as session:
            async with session.begin():
                yield Transaction(session)

    def _aborted(self, operation: str, reason: str) -> None:
        if self.metrics is not None:
            self.metrics.record_transaction_abort(operation, reason)

    async def run(
        self,
        work: Callable[[Transaction], Awaitable[T]],
        *,
        operation: str,
        user_id: str | None = None,
    ) -> T:
        """
        Run ``work`` inside one bounded transaction attempt.

        Args:
            work: Coroutine function receiving the open Transaction
            operation: Name used for logs and metrics
            user_id: Identity the transaction concerns, for error context

        Returns:
            Whatever ``work`` returns, after commit

        Raises:
            TransactionAborted: The store rejected the transaction or it timed out
        """
        start = time.perf_counter()
        try:
            async with asyncio.timeout(self.timeout_seconds):
                async with self.transaction() as txn:
                    return await work(txn)
        except TransactionAborted as e:
            self._aborted(operation, e.error_code.lower())
            logger.warning(f"{operation} aborted for identity {user_id}: {e.message}")
            raise
        except TimeoutError as e:
            self._aborted(operation, "timeout")
            raise TransactionAborted(
                f"{operation} did not commit within {self.timeout_seconds}s",
                identity=user_id,
                operation=operation,
            ) from e
        except SQLAlchemyError as e:
            self._aborted(operation, type(e).__name__.lower())
            logger.warning(f"{operation} rolled back for identity {user_id}: {e}")
            raise TransactionAborted(
                f"{operation} rolled back: {type(e).__name__}",
                identity=user_id,
                operation=operation,
            ) from e
        finally:
            if self.metrics is not None:
                self.metrics.record_transaction(operation, time.perf_counter() - start)

    async def run_with_retry(
        self,
        work: Callable[[Transaction], Awaitable[T]],
        *,
        operation: str,
        user_id: str,
        device: str | None = None,
    ) -> T:
        """
        Run ``work`` in a fresh transaction, retrying aborted attempts.

        Each retry starts from a new snapshot, so ``work`` must re-read
        whatever it decides on.

        Raises:
            SessionWriteFailed: Every attempt was aborted
        """
        attempts = self.retries + 1
        last_error: TransactionAborted | None = None

        for attempt in range(1, attempts + 1):
            try:
                return await self.run(work, operation=operation, user_id=user_id)
            except TransactionAborted as e:
                last_error = e
                if attempt < attempts:
                    if self.metrics is not None:
                        self.metrics.record_retry(operation)
                    logger.info(f"Retrying {operation} (attempt {attempt + 1}/{attempts})")

        raise SessionWriteFailed(
            f"{operation} could not be committed, retry the request",
            identity=user_id,
            device=device,
            attempts=attempts,
        ) from last_error

    async def apply(
        self,
        txn: Transaction,
        identity: IdentityModel,
        plan: MutationPlan,
    ) -> SessionRecordModel:
        """
        Write an admission plan to both stores.

        Order: delete removed devices' records, upsert the requesting record,
        then swap in the new device index (revision-checked). A failure at any
        step propagates and the enclosing transaction rolls everything back.
        """
        if plan.removed_devices:
            await txn.sessions.delete_devices(plan.user_id, plan.removed_devices)

        record = await txn.sessions.upsert(
            user_id=plan.user_id,
            device=plan.device,
            device_agent=plan.device_agent,
            ip=plan.ip,
            platform=plan.platform.value,
            access_token=plan.access_token,
            refresh_token=plan.refresh_token,
            login_at=plan.login_at,
        )

        await txn.identities.update_device_index(identity, plan.device_index)
        return record

    async def remove_devices(
        self,
        txn: Transaction,
        identity: IdentityModel,
        devices: list[str],
        sweep_orphans: bool = True,
    ) -> int:
        """
        Delete device sessions and their index entries together.

        With ``sweep_orphans``, index entries that have no live record are
        dropped in the same write.

        Returns:
            Number of session records deleted
        """
        deleted = await txn.sessions.delete_devices(identity.id, devices)

        removed = set(devices)
        index = {d: a for d, a in (identity.device_index or {}).items() if d not in removed}
        if sweep_orphans and index:
            live = {r.device for r in await txn.sessions.list_live(identity.id)}
            index = {d: a for d, a in index.items() if d in live}

        await txn.identities.update_device_index(identity, index)
        return deleted


__all__ = [
    "Transaction",
    "TransactionCoordinator",
]
