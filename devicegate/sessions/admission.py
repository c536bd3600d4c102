# DeviceGate - Device Session Admission & Consistency Engine
# Copyright (c) 2026 George Scott Foley
# ORCID: 0009-0006-4957-0540
# Email: Georgescottfoley@proton.me
# Licensed under the MIT License - see LICENSE file for details

"""
Admission Controller

Decides whether a login may proceed for an identity given the device limit,
and which sessions must go to make room. Pure decision logic: it reads a
snapshot taken inside the current transaction attempt and returns a
MutationPlan; the transaction coordinator applies it.

Eviction policies, in order:
    inactive  the oldest session whose last login is older than the
              inactivity threshold
    oldest    the globally oldest session, regardless of age

Ties on login_at are broken by device id so the choice is deterministic.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta

from ..core.exceptions import (
    DeviceLimitUnsatisfiable,
    DeviceNotFound,
    SessionReconciliationRequired,
)
from ..data.models import IdentityModel, Platform, SessionRecordModel, as_utc
from .tokens import TokenPair

logger = logging.getLogger(__name__)


class EvictionPolicy:
    INACTIVE = "inactive"
    OLDEST = "oldest"


@dataclass(frozen=True)
class AdmissionRequest:
    """A login for (identity, device), optionally dropping another device."""

    identity: str
    device: str
    device_agent: str
    ip: str
    platform: Platform
    revoke_device: str | None = None


@dataclass(frozen=True)
class Eviction:
    device: str
    policy: str
    login_at: datetime


@dataclass(frozen=True)
class MutationPlan:
    """
    Everything one admission writes, decided against a single snapshot.

    Attributes:
        user_id: Identity the plan belongs to
        device: Requesting device (upserted)
        removed_devices: Devices whose records and index entries are deleted
        device_index: The complete index to write
        eviction: Forced eviction made to respect the limit, if any
        is_new_device: Whether the requesting device was absent from the index
    """

    user_id: str
    device: str
    device_agent: str
    ip: str
    platform: Platform
    login_at: datetime
    removed_devices: tuple[str, ...] = ()
    device_index: dict[str, str] = field(default_factory=dict)
    eviction: Eviction | None = None
    is_new_device: bool = True
    access_token: str = ""
    refresh_token: str = ""

    def with_tokens(self, tokens: TokenPair) -> "MutationPlan":
        return replace(
            self, access_token=tokens.access_token, refresh_token=tokens.refresh_token
        )


def _age_key(record: SessionRecordModel) -> tuple[datetime, str]:
    return as_utc(record.login_at), record.device


class AdmissionController:
    """
    Applies the device limit to a login request.

    Usage:
        controller = AdmissionController(device_limit=5, eviction_threshold=timedelta(hours=24))
        plan = controller.decide(request, identity, live_sessions, now)
    """

    def __init__(self, device_limit: int, eviction_threshold: timedelta):
        self.device_limit = device_limit
        self.eviction_threshold = eviction_threshold

    def select_eviction_candidate(
        self,
        live_sessions: Sequence[SessionRecordModel],
        now: datetime,
        exclude: str | None = None,
    ) -> Eviction | None:
        """
        Pick the session to evict, or None when there is nothing to evict.

        Args:
            live_sessions: The identity's live session records
            now: Reference time for the inactivity threshold
            exclude: Device that must never be chosen (the requesting one)
        """
        candidates = sorted(
            (r for r in live_sessions if r.logout_at is None and r.device != exclude),
            key=_age_key,
        )
        if not candidates:
            return None

        cutoff = now - self.eviction_threshold
        for record in candidates:
            if as_utc(record.login_at) < cutoff:
                return Eviction(record.device, EvictionPolicy.INACTIVE, as_utc(record.login_at))

        oldest = candidates[0]
        return Eviction(oldest.device, EvictionPolicy.OLDEST, as_utc(oldest.login_at))

    def _over_limit(self, request: AdmissionRequest, count: int, reason: str):
        if self.device_limit < 1:
            return DeviceLimitUnsatisfiable(
                f"Device limit {self.device_limit} cannot admit any session",
                identity=request.identity,
                device=request.device,
                device_limit=self.device_limit,
                count=count,
            )
        return SessionReconciliationRequired(
            reason,
            identity=request.identity,
            device=request.device,
            device_limit=self.device_limit,
            count=count,
        )

    def decide(
        self,
        request: AdmissionRequest,
        identity: IdentityModel,
        live_sessions: Sequence[SessionRecordModel],
        now: datetime,
    ) -> MutationPlan:
        """
        Decide the outcome of a login.

        Args:
            request: The login request
            identity: Identity snapshot read in the current transaction
            live_sessions: Live session records read in the same transaction
            now: Login time

        Returns:
            MutationPlan without tokens

        Raises:
            DeviceNotFound: revoke_device is not in the device index
            SessionReconciliationRequired: Limit exceeded and eviction cannot fix it
            DeviceLimitUnsatisfiable: The limit is below one
        """
        index = dict(identity.device_index or {})
        revoke = request.revoke_device

        if revoke is not None and revoke not in index:
            raise DeviceNotFound(
                "Device to revoke is not logged in",
                identity=request.identity,
                device=revoke,
            )

        is_new_device = request.device not in index
        removed: list[str] = []
        if revoke is not None and revoke != request.device:
            removed.append(revoke)

        # Devices left in the index once the plan is applied
        remaining = set(index) - set(removed)
        remaining.add(request.device)

        eviction = None
        if revoke is None and len(remaining) > self.device_limit:
            eviction = self.select_eviction_candidate(live_sessions, now, exclude=request.device)
            if eviction is None:
                raise self._over_limit(
                    request,
                    len(remaining),
                    "Device limit exceeded with no session to evict",
                )
            removed.append(eviction.device)
            remaining.discard(eviction.device)
            logger.info(
                f"Evicting device {eviction.device} for identity {request.identity} "
                f"(policy={eviction.policy})"
            )

        if len(remaining) > self.device_limit:
            raise self._over_limit(
                request,
                len(remaining),
                "Device index still exceeds the limit after eviction",
            )

        new_index = {d: agent for d, agent in index.items() if d in remaining}
        new_index[request.device] = request.device_agent

        return MutationPlan(
            user_id=request.identity,
            device=request.device,
            device_agent=request.device_agent,
            ip=request.ip,
            platform=Platform(request.platform),
            login_at=now,
            removed_devices=tuple(removed),
            device_index=new_index,
            eviction=eviction,
            is_new_device=is_new_device,
        )


__all__ = [
    "EvictionPolicy",
    "AdmissionRequest",
    "Eviction",
    "MutationPlan",
    "AdmissionController",
]
