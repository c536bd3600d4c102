"""
Test Suite: Logging and Audit
=============================

Tokens never reach the log stream, and every session mutation leaves an
audit record carrying identity and device.
"""

import json
import logging

import pytest

from devicegate.data.models import Platform
from devicegate.observability.logging import (
    HumanFormatter,
    JSONFormatter,
    clear_request_context,
    get_request_context,
    mask_sensitive_data,
    session_context,
    set_request_context,
)


class TestMasking:
    def test_sensitive_keys_redacted(self):
        masked = mask_sensitive_data(
            {"refresh_token": "abc", "nested": {"access_token": "def"}, "device": "phone"}
        )
        assert masked == {
            "refresh_token": "[REDACTED]",
            "nested": {"access_token": "[REDACTED]"},
            "device": "phone",
        }

    def test_bare_jwt_values_redacted(self):
        masked = mask_sensitive_data(["eyJhbGciOiJIUzI1NiJ9.payload.signature"])
        assert masked == ["eyJhbGci...[REDACTED]"]


class TestContext:
    def test_session_context_is_scoped(self):
        with session_context("user-1", "phone"):
            assert get_request_context()["user_id"] == "user-1"
            assert get_request_context()["device"] == "phone"
        assert get_request_context()["user_id"] is None

    def test_request_context_round_trip(self):
        set_request_context(request_id="req-1", user_id="user-1")
        assert get_request_context()["request_id"] == "req-1"

        clear_request_context()
        assert get_request_context() == {"request_id": None, "user_id": None, "device": None}

    def test_json_formatter_includes_context(self):
        record = logging.LogRecord("devicegate.test", logging.INFO, __file__, 1, "hello", None, None)
        record.refresh_token = "secret-value"

        with session_context("user-1", "phone"):
            line = json.loads(JSONFormatter().format(record))

        assert line["message"] == "hello"
        assert line["user_id"] == "user-1"
        assert line["device"] == "phone"
        assert line["extra"]["refresh_token"] == "[REDACTED]"

    def test_human_formatter_inlines_device(self):
        record = logging.LogRecord("devicegate.test", logging.WARNING, __file__, 7, "evicted", None, None)

        with session_context("user-1", "phone"):
            line = HumanFormatter(use_colors=False).format(record)

        assert "WARNING" in line
        assert "device=phone" in line
        assert line.endswith("evicted")


class TestAudit:
    @pytest.mark.asyncio
    async def test_login_and_eviction_are_audited(self, engine, user_id, caplog):
        caplog.set_level(logging.INFO, logger="devicegate.audit")

        for i in range(6):
            await engine.login(user_id, f"d{i}", "agent", "10.0.0.1", Platform.APP)

        audits = [r for r in caplog.records if getattr(r, "audit_event", False)]
        actions = [r.action for r in audits]
        assert actions.count("login") == 6
        assert actions.count("evict") == 1

        evict = next(r for r in audits if r.action == "evict")
        assert evict.identity == user_id
        assert evict.target_device == "d0"
        assert evict.details["policy"] == "oldest"

    @pytest.mark.asyncio
    async def test_tokens_not_in_audit_details(self, engine, user_id, caplog):
        caplog.set_level(logging.INFO, logger="devicegate.audit")
        result = await engine.login(user_id, "phone", "agent", "10.0.0.1", Platform.APP)

        assert result.access_token not in caplog.text
        assert result.refresh_token not in caplog.text
