"""
Test Suite: Admission Controller
================================

Pure decision logic: device limit, inactive-first eviction with fallback to
the oldest session, deterministic tie-break, and explicit revokes.
"""

from datetime import UTC, datetime, timedelta

import pytest

from devicegate.core.exceptions import (
    DeviceLimitUnsatisfiable,
    DeviceNotFound,
    SessionReconciliationRequired,
)
from devicegate.data.models import IdentityModel, Platform, SessionRecordModel
from devicegate.sessions.admission import (
    AdmissionController,
    AdmissionRequest,
    EvictionPolicy,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _record(device: str, hours_ago: float) -> SessionRecordModel:
    return SessionRecordModel(
        user_id="user-1",
        device=device,
        device_agent=f"agent-{device}",
        ip="10.0.0.1",
        platform="APP",
        access_token="a",
        refresh_token="r",
        login_at=NOW - timedelta(hours=hours_ago),
        logout_at=None,
    )


def _state(ages: dict[str, float]):
    records = [_record(device, hours) for device, hours in ages.items()]
    identity = IdentityModel(
        id="user-1",
        for_system=False,
        device_index={r.device: r.device_agent for r in records},
        revision=0,
    )
    return identity, records


def _request(device: str = "new-device", revoke_device: str | None = None) -> AdmissionRequest:
    return AdmissionRequest(
        identity="user-1",
        device=device,
        device_agent=f"agent-{device}",
        ip="10.0.0.9",
        platform=Platform.WEB,
        revoke_device=revoke_device,
    )


@pytest.fixture
def controller():
    return AdmissionController(device_limit=5, eviction_threshold=timedelta(hours=24))


class TestUnderLimit:
    def test_first_login(self, controller):
        identity, records = _state({})
        plan = controller.decide(_request("phone"), identity, records, NOW)

        assert plan.is_new_device
        assert plan.removed_devices == ()
        assert plan.eviction is None
        assert plan.device_index == {"phone": "agent-phone"}
        assert plan.login_at == NOW

    def test_relogin_at_limit_keeps_everyone(self, controller):
        identity, records = _state({"a": 1, "b": 2, "c": 3, "d": 4, "e": 5})
        plan = controller.decide(_request("c"), identity, records, NOW)

        assert not plan.is_new_device
        assert plan.eviction is None
        assert set(plan.device_index) == {"a", "b", "c", "d", "e"}

    def test_relogin_updates_agent(self, controller):
        identity, records = _state({"phone": 3})
        request = AdmissionRequest("user-1", "phone", "Pixel 9", "10.0.0.2", Platform.APP)
        plan = controller.decide(request, identity, records, NOW)
        assert plan.device_index == {"phone": "Pixel 9"}


class TestEviction:
    def test_inactive_session_evicted_first(self, controller):
        identity, records = _state({"d30": 30, "d20": 20, "d10": 10, "d5": 5, "d1": 1})
        plan = controller.decide(_request(), identity, records, NOW)

        assert plan.eviction.device == "d30"
        assert plan.eviction.policy == EvictionPolicy.INACTIVE
        assert plan.removed_devices == ("d30",)
        assert set(plan.device_index) == {"d20", "d10", "d5", "d1", "new-device"}

    def test_oldest_of_several_inactive(self, controller):
        identity, records = _state({"a": 48, "b": 72, "c": 25, "d": 1, "e": 2})
        plan = controller.decide(_request(), identity, records, NOW)
        assert plan.eviction.device == "b"
        assert plan.eviction.policy == EvictionPolicy.INACTIVE

    def test_fallback_to_globally_oldest(self, controller):
        identity, records = _state({"a": 0.5, "b": 1.9, "c": 1.0, "d": 0.1, "e": 1.5})
        plan = controller.decide(_request(), identity, records, NOW)

        assert plan.eviction.device == "b"
        assert plan.eviction.policy == EvictionPolicy.OLDEST

    def test_exactly_at_threshold_is_not_inactive(self, controller):
        identity, records = _state({"a": 24, "b": 1, "c": 2, "d": 3, "e": 4})
        plan = controller.decide(_request(), identity, records, NOW)
        assert plan.eviction.device == "a"
        assert plan.eviction.policy == EvictionPolicy.OLDEST

    def test_tie_broken_by_device_id(self, controller):
        identity, records = _state({"zeta": 30, "alpha": 30, "m": 1, "n": 2, "o": 3})
        plan = controller.decide(_request(), identity, records, NOW)
        assert plan.eviction.device == "alpha"

    def test_requesting_device_never_evicted(self, controller):
        candidate = controller.select_eviction_candidate(
            [_record("self", 50), _record("other", 2)], NOW, exclude="self"
        )
        assert candidate.device == "other"

    def test_no_candidate(self, controller):
        assert controller.select_eviction_candidate([], NOW) is None


class TestExplicitRevoke:
    def test_revoke_replaces_eviction(self, controller):
        identity, records = _state({"a": 30, "b": 2, "c": 3, "d": 4, "e": 5})
        plan = controller.decide(_request(revoke_device="c"), identity, records, NOW)

        assert plan.eviction is None
        assert plan.removed_devices == ("c",)
        assert set(plan.device_index) == {"a", "b", "d", "e", "new-device"}

    def test_unknown_revoke_target(self, controller):
        identity, records = _state({"a": 1})
        with pytest.raises(DeviceNotFound) as exc:
            controller.decide(_request(revoke_device="ghost"), identity, records, NOW)
        assert exc.value.details["device"] == "ghost"
        assert exc.value.status_code == 404

    def test_revoking_the_requesting_device_relogs_it(self, controller):
        identity, records = _state({"a": 1, "b": 2})
        plan = controller.decide(_request("a", revoke_device="a"), identity, records, NOW)
        assert plan.removed_devices == ()
        assert set(plan.device_index) == {"a", "b"}


class TestDrift:
    def test_stale_index_entries_block_admission(self, controller):
        # Index lists devices that have no live session behind them
        identity, records = _state({"a": 1})
        identity.device_index = {f"ghost-{i}": "x" for i in range(5)} | {"a": "agent-a"}

        with pytest.raises(SessionReconciliationRequired):
            controller.decide(_request(), identity, records, NOW)

    def test_over_limit_without_sessions(self, controller):
        identity, _ = _state({})
        identity.device_index = {f"ghost-{i}": "x" for i in range(5)}

        with pytest.raises(SessionReconciliationRequired) as exc:
            controller.decide(_request(), identity, [], NOW)
        assert exc.value.details["count"] == 6

    def test_zero_limit_is_unsatisfiable(self):
        controller = AdmissionController(device_limit=0, eviction_threshold=timedelta(hours=24))
        identity, records = _state({"a": 1})

        with pytest.raises(DeviceLimitUnsatisfiable):
            controller.decide(_request(), identity, records, NOW)
