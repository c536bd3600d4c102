# DeviceGate - Device Session Admission & Consistency Engine
# Copyright (c) 2026 George Scott Foley
# ORCID: 0009-0006-4957-0540
# Email: Georgescottfoley@proton.me
# Licensed under the MIT License - see LICENSE file for details

"""
Device session lifecycle: tokens, admission, transactions, reconciliation.
"""

from .admission import (
    AdmissionController,
    AdmissionRequest,
    Eviction,
    EvictionPolicy,
    MutationPlan,
)
from .engine import (
    ActiveSession,
    AuthenticatedDevice,
    LoginResult,
    RenewResult,
    SessionEngine,
)
from .reconciler import ReconcileResult, Reconciler, SweepResult
from .tokens import TokenClaims, TokenIssuer, TokenPair, TokenType
from .transactions import Transaction, TransactionCoordinator

__all__ = [
    # Tokens
    "TokenIssuer",
    "TokenType",
    "TokenClaims",
    "TokenPair",
    # Admission
    "AdmissionController",
    "AdmissionRequest",
    "MutationPlan",
    "Eviction",
    "EvictionPolicy",
    # Transactions
    "Transaction",
    "TransactionCoordinator",
    # Reconciliation
    "Reconciler",
    "ReconcileResult",
    "SweepResult",
    # Engine
    "SessionEngine",
    "LoginResult",
    "RenewResult",
    "ActiveSession",
    "AuthenticatedDevice",
]
