"""
Test Suite: Revocation
======================

Logging devices out removes the session record and the index entry in one
transaction, sweeping orphaned index entries along the way.
"""

from datetime import timedelta

import pytest

from devicegate.core.exceptions import DeviceNotFound, IdentityNotFound, SessionNotFound
from devicegate.data.models import Platform


class TestRevokeDevice:
    @pytest.mark.asyncio
    async def test_no_sessions_raises_device_not_found(self, engine, user_id):
        with pytest.raises(DeviceNotFound) as exc:
            await engine.revoke_device(user_id, "deviceA")
        assert exc.value.details == {"identity": user_id, "device": "deviceA"}

    @pytest.mark.asyncio
    async def test_unknown_identity(self, engine):
        with pytest.raises(IdentityNotFound):
            await engine.revoke_device("nobody", "deviceA")

    @pytest.mark.asyncio
    async def test_removes_record_and_index_entry(self, engine, user_id, store_state):
        await engine.login(user_id, "deviceA", "agent", "10.0.0.1", Platform.APP)
        await engine.login(user_id, "deviceB", "agent", "10.0.0.1", Platform.WEB)

        await engine.revoke_device(user_id, "deviceA")

        state = await store_state(user_id)
        assert state.index == {"deviceB": "agent"}
        assert state.live_devices == {"deviceB"}

    @pytest.mark.asyncio
    async def test_second_revoke_fails(self, engine, user_id):
        await engine.login(user_id, "deviceA", "agent", "10.0.0.1", Platform.APP)
        await engine.revoke_device(user_id, "deviceA")

        with pytest.raises(DeviceNotFound):
            await engine.revoke_device(user_id, "deviceA")

    @pytest.mark.asyncio
    async def test_index_only_entry_is_revocable(self, engine, user_id, corrupt_index, store_state):
        await corrupt_index(user_id, {"ghost": "x"})

        await engine.revoke_device(user_id, "ghost")

        assert (await store_state(user_id)).index == {}

    @pytest.mark.asyncio
    async def test_sweeps_orphans(self, engine, user_id, seed_sessions, corrupt_index, store_state):
        await seed_sessions(user_id, {"a": timedelta(hours=1), "b": timedelta(hours=2)})
        await corrupt_index(user_id, {"a": "agent-a", "b": "agent-b", "orphan": "x"})

        await engine.revoke_device(user_id, "a")

        state = await store_state(user_id)
        assert state.index == {"b": "agent-b"}
        assert state.mirrored

    @pytest.mark.asyncio
    async def test_revoked_device_cannot_authenticate(self, engine, user_id):
        result = await engine.login(user_id, "deviceA", "agent", "10.0.0.1", Platform.APP)
        await engine.revoke_device(user_id, "deviceA")

        with pytest.raises(SessionNotFound):
            await engine.authenticate(result.access_token)


class TestRevokeAll:
    @pytest.mark.asyncio
    async def test_terminates_every_device(self, engine, user_id, store_state, metrics):
        for device in ("a", "b", "c"):
            await engine.login(user_id, device, "agent", "10.0.0.1", Platform.APP)

        count = await engine.revoke_all_devices(user_id)

        assert count == 3
        state = await store_state(user_id)
        assert state.index == {}
        assert state.live_devices == set()
        assert metrics.sample("revocations_total", scope="all") == 3

    @pytest.mark.asyncio
    async def test_clears_orphans_even_with_no_sessions(self, engine, user_id, corrupt_index, store_state):
        await corrupt_index(user_id, {"ghost": "x"})

        assert await engine.revoke_all_devices(user_id) == 0
        assert (await store_state(user_id)).index == {}

    @pytest.mark.asyncio
    async def test_other_identities_untouched(self, engine, make_identity, store_state):
        alice = await make_identity()
        bob = await make_identity()
        await engine.login(alice, "phone", "agent", "10.0.0.1", Platform.APP)
        await engine.login(bob, "phone", "agent", "10.0.0.2", Platform.APP)

        await engine.revoke_all_devices(alice)

        assert (await store_state(bob)).live_devices == {"phone"}


class TestTerminateSession:
    @pytest.mark.asyncio
    async def test_by_session_id(self, engine, user_id, store_state):
        result = await engine.login(user_id, "deviceA", "agent", "10.0.0.1", Platform.APP)

        await engine.terminate_session(result.session_id)

        state = await store_state(user_id)
        assert state.index == {}
        assert state.live_devices == set()

    @pytest.mark.asyncio
    async def test_unknown_session_id(self, engine):
        with pytest.raises(SessionNotFound) as exc:
            await engine.terminate_session("missing")
        assert exc.value.details["session_id"] == "missing"
