# DeviceGate - Device Session Admission & Consistency Engine
# Copyright (c) 2026 George Scott Foley
# ORCID: 0009-0006-4957-0540
# Email: Georgescottfoley@proton.me
# Licensed under the MIT License - see LICENSE file for details

"""
Observability - Metrics Module

Prometheus-compatible metrics for:
- Admission outcomes and forced evictions
- Revocations
- Device index reconciliation
- Transaction aborts, retries and latency

Uses prometheus_client library for proper metric types.
Each MetricsRegistry owns its CollectorRegistry, so several engines (or
test cases) can coexist in one process without duplicate-series errors.
"""

import logging

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Histogram,
    Info,
)

logger = logging.getLogger(__name__)


# ============================================================
# METRIC DEFINITIONS
# ============================================================

# Default buckets for transaction latency histograms (in seconds)
LATENCY_BUCKETS = (
    0.001,
    0.0025,
    0.005,
    0.01,
    0.025,
    0.05,
    0.1,
    0.25,
    0.5,
    1.0,
    2.5,
    5.0,
    10.0,
)


class MetricsRegistry:
    """
    Central metrics registry for DeviceGate.

    Usage:
        metrics = MetricsRegistry(namespace="devicegate")
        metrics.record_admission(outcome="new_device", platform="APP")
    """

    def __init__(self, namespace: str = "devicegate", registry: CollectorRegistry | None = None):
        self.namespace = namespace
        self.registry = registry or CollectorRegistry()
        self._init_prometheus_metrics()

    def _init_prometheus_metrics(self):
        """Initialize Prometheus metrics."""
        ns = self.namespace
        reg = self.registry

        # ============================================================
        # ADMISSION METRICS
        # ============================================================

        self.admissions_total = Counter(
            f"{ns}_admissions_total",
            "Login admissions by outcome",
            ["outcome", "platform"],
            registry=reg,
        )

        self.evictions_total = Counter(
            f"{ns}_evictions_total",
            "Sessions evicted to stay under the device limit",
            ["policy"],
            registry=reg,
        )

        self.renewals_total = Counter(
            f"{ns}_renewals_total",
            "Access token renewals by result",
            ["result"],
            registry=reg,
        )

        # ============================================================
        # REVOCATION METRICS
        # ============================================================

        self.revocations_total = Counter(
            f"{ns}_revocations_total",
            "Device sessions revoked",
            ["scope"],
            registry=reg,
        )

        # ============================================================
        # RECONCILIATION METRICS
        # ============================================================

        self.reconcile_runs_total = Counter(
            f"{ns}_reconcile_runs_total",
            "Device index reconciliation runs",
            registry=reg,
        )

        self.reconcile_removed_total = Counter(
            f"{ns}_reconcile_removed_total",
            "Stale device index entries removed",
            registry=reg,
        )

        self.reconcile_restored_total = Counter(
            f"{ns}_reconcile_restored_total",
            "Missing device index entries restored from live sessions",
            registry=reg,
        )

        # ============================================================
        # TRANSACTION METRICS
        # ============================================================

        self.transaction_duration_seconds = Histogram(
            f"{ns}_transaction_duration_seconds",
            "Store transaction duration in seconds",
            ["operation"],
            buckets=LATENCY_BUCKETS,
            registry=reg,
        )

        self.transaction_aborts_total = Counter(
            f"{ns}_transaction_aborts_total",
            "Rolled back store transactions",
            ["operation", "reason"],
            registry=reg,
        )

        self.transaction_retries_total = Counter(
            f"{ns}_transaction_retries_total",
            "Whole-operation retries after an aborted transaction",
            ["operation"],
            registry=reg,
        )

        # ============================================================
        # SYSTEM INFO
        # ============================================================

        self.app_info = Info(
            f"{ns}_app",
            "Application information",
            registry=reg,
        )

    def set_app_info(self, version: str, environment: str, **kwargs):
        """Set application info."""
        self.app_info.info(
            {
                "version": version,
                "environment": environment,
                **kwargs,
            }
        )

    # ============================================================
    # RECORDING METHODS
    # ============================================================

    def record_admission(self, outcome: str, platform: str):
        """Record a login admission (new_device, relogin, rejected, failed)."""
        self.admissions_total.labels(outcome=outcome, platform=platform).inc()

    def record_eviction(self, policy: str):
        """Record a forced eviction (inactive or oldest)."""
        self.evictions_total.labels(policy=policy).inc()

    def record_renewal(self, result: str):
        self.renewals_total.labels(result=result).inc()

    def record_revocation(self, scope: str, count: int = 1):
        """Record revoked sessions (scope: device, all, session)."""
        if count > 0:
            self.revocations_total.labels(scope=scope).inc(count)

    def record_reconcile(self, removed: int, restored: int):
        self.reconcile_runs_total.inc()
        if removed:
            self.reconcile_removed_total.inc(removed)
        if restored:
            self.reconcile_restored_total.inc(restored)

    def record_transaction(self, operation: str, duration_seconds: float):
        self.transaction_duration_seconds.labels(operation=operation).observe(duration_seconds)

    def record_transaction_abort(self, operation: str, reason: str):
        self.transaction_aborts_total.labels(operation=operation, reason=reason).inc()

    def record_retry(self, operation: str):
        self.transaction_retries_total.labels(operation=operation).inc()

    def sample(self, name: str, **labels) -> float:
        """Current value of a sample, 0.0 when it was never recorded."""
        value = self.registry.get_sample_value(f"{self.namespace}_{name}", labels or None)
        return value or 0.0


# ============================================================
# GLOBAL METRICS INSTANCE
# ============================================================

_metrics: MetricsRegistry | None = None


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsRegistry()
    return _metrics


def init_metrics(
    namespace: str = "devicegate",
    app_version: str = "0.0.0",
    environment: str = "development",
) -> MetricsRegistry:
    """Initialize the global metrics registry."""
    global _metrics
    _metrics = MetricsRegistry(namespace=namespace)
    _metrics.set_app_info(version=app_version, environment=environment)
    logger.info(f"Metrics initialized (namespace={namespace})")
    return _metrics


# ============================================================
# EXPORTS
# ============================================================

__all__ = [
    "MetricsRegistry",
    "get_metrics",
    "init_metrics",
    "LATENCY_BUCKETS",
]
