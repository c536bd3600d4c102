# DeviceGate - Device Session Admission & Consistency Engine
# Copyright (c) 2026 George Scott Foley
# ORCID: 0009-0006-4957-0540
# Email: Georgescottfoley@proton.me
# Licensed under the MIT License - see LICENSE file for details

"""
Reconciler

Repairs drift between the session store and the device index. The index is
a materialized view of the live session records, so the store always wins:

- index entries without a live record are removed (invalid devices)
- live records missing from the index are put back (restored devices)

Session records themselves are never deleted here.
"""

import logging
from dataclasses import dataclass, field

from ..core.exceptions import DeviceGateError, IdentityNotFound
from ..data.models import IdentityModel
from ..observability.logging import audit_logger
from ..observability.metrics import MetricsRegistry
from .transactions import Transaction, TransactionCoordinator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconcileResult:
    removed_count: int = 0
    invalid_devices: list[str] = field(default_factory=list)
    restored_devices: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.invalid_devices or self.restored_devices)


@dataclass
class SweepResult:
    """Outcome of reconciling every identity."""

    scanned: int = 0
    repaired: int = 0
    removed_count: int = 0
    restored_count: int = 0
    failed: list[str] = field(default_factory=list)


class Reconciler:
    """
    Device index repair, per identity or as a sweep over all identities.

    Usage:
        reconciler = Reconciler(coordinator)
        result = await reconciler.reconcile(user_id)
        sweep = await reconciler.reconcile_all(batch_size=500)
    """

    def __init__(self, coordinator: TransactionCoordinator, metrics: MetricsRegistry | None = None):
        self.coordinator = coordinator
        self.metrics = metrics

    async def reconcile_in(self, txn: Transaction, identity: IdentityModel) -> ReconcileResult:
        """Reconcile inside an already open transaction."""
        live = {r.device: r.device_agent for r in await txn.sessions.list_live(identity.id)}
        index = dict(identity.device_index or {})

        invalid = sorted(set(index) - set(live))
        restored = sorted(set(live) - set(index))
        result = ReconcileResult(
            removed_count=len(invalid),
            invalid_devices=invalid,
            restored_devices=restored,
        )
        if not result.changed:
            return result

        new_index = {d: agent for d, agent in index.items() if d in live}
        for device in restored:
            new_index[device] = live[device]
        await txn.identities.update_device_index(identity, new_index)
        return result

    async def reconcile(self, user_id: str) -> ReconcileResult:
        """
        Reconcile one identity in its own transaction.

        Raises:
            IdentityNotFound: No identity with this id
            SessionWriteFailed: The repair could not be committed after retries
        """

        async def work(txn: Transaction) -> ReconcileResult:
            identity = await txn.identities.get(user_id)
            if identity is None:
                raise IdentityNotFound("Identity not found", identity=user_id)
            return await self.reconcile_in(txn, identity)

        result = await self.coordinator.run_with_retry(work, operation="reconcile", user_id=user_id)

        if self.metrics is not None:
            self.metrics.record_reconcile(result.removed_count, len(result.restored_devices))
        if result.changed:
            logger.info(
                f"Reconciled identity {user_id}: removed={result.invalid_devices} "
                f"restored={result.restored_devices}"
            )
            audit_logger.reconcile(
                user_id,
                {
                    "invalid_devices": result.invalid_devices,
                    "restored_devices": result.restored_devices,
                },
            )
        return result

    async def _identity_batch(self, after: str | None, limit: int) -> list[str]:
        async def work(txn: Transaction) -> list[str]:
            return await txn.identities.list_ids(after=after, limit=limit)

        return await self.coordinator.run(work, operation="list_identities")

    async def reconcile_all(self, batch_size: int = 500) -> SweepResult:
        """
        Reconcile every identity, one short transaction each.

        A failure on one identity is logged and recorded in ``failed``; the
        sweep carries on with the rest.
        """
        sweep = SweepResult()
        after: str | None = None

        while True:
            batch = await self._identity_batch(after, batch_size)
            if not batch:
                break

            for user_id in batch:
                sweep.scanned += 1
                try:
                    result = await self.reconcile(user_id)
                except DeviceGateError as e:
                    logger.error(f"Reconcile failed for identity {user_id}: {e.message}")
                    sweep.failed.append(user_id)
                    continue

                if result.changed:
                    sweep.repaired += 1
                    sweep.removed_count += result.removed_count
                    sweep.restored_count += len(result.restored_devices)

            after = batch[-1]

        logger.info(
            f"Reconcile sweep finished: scanned={sweep.scanned} repaired={sweep.repaired} "
            f"failed={len(sweep.failed)}"
        )
        return sweep


__all__ = [
    "ReconcileResult",
    "SweepResult",
    "Reconciler",
]
