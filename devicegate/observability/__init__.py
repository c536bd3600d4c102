# DeviceGate - Device Session Admission & Consistency Engine
# Copyright (c) 2026 George Scott Foley
# ORCID: 0009-0006-4957-0540
# Email: Georgescottfoley@proton.me
# Licensed under the MIT License - see LICENSE file for details

"""
Observability

- Structured logging with identity/device context and audit events
- Prometheus metrics for admissions, evictions and transactions
"""

from .logging import (
    AuditLogger,
    ContextLogger,
    HumanFormatter,
    JSONFormatter,
    audit_logger,
    clear_request_context,
    configure_logging,
    get_logger,
    get_request_context,
    mask_sensitive_data,
    session_context,
    set_request_context,
)
from .metrics import MetricsRegistry, get_metrics, init_metrics

__all__ = [
    # Logging
    "configure_logging",
    "get_logger",
    "ContextLogger",
    "JSONFormatter",
    "HumanFormatter",
    "set_request_context",
    "clear_request_context",
    "get_request_context",
    "session_context",
    "mask_sensitive_data",
    # Audit
    "AuditLogger",
    "audit_logger",
    # Metrics
    "MetricsRegistry",
    "get_metrics",
    "init_metrics",
]
