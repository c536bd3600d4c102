# DeviceGate - Device Session Admission & Consistency Engine
# Copyright (c) 2026 George Scott Foley
# ORCID: 0009-0006-4957-0540
# Email: Georgescottfoley@proton.me
# Licensed under the MIT License - see LICENSE file for details

"""
Observability - Structured Logging

Every line the engine emits carries the invocation's correlation id and,
while a session operation is running, the identity and device it acts on.
Tokens are stripped before a record is serialized.

Two renderings are available:
- ``json``: one object per line, for shipping to a log pipeline
- ``human``: coloured single lines, for a terminal
"""

import json
import logging
import re
import sys
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

CONTEXT_KEYS = ("request_id", "user_id", "device")

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
user_id_var: ContextVar[str | None] = ContextVar("user_id", default=None)
device_var: ContextVar[str | None] = ContextVar("device", default=None)

_CONTEXT_VARS: dict[str, ContextVar[str | None]] = {
    "request_id": request_id_var,
    "user_id": user_id_var,
    "device": device_var,
}


def set_request_context(**values: str | None) -> None:
    """Bind non-empty values among request_id, user_id and device."""
    for key, value in values.items():
        if key not in _CONTEXT_VARS:
            raise TypeError(f"unknown log context key: {key}")
        if value:
            _CONTEXT_VARS[key].set(value)


def clear_request_context() -> None:
    for var in _CONTEXT_VARS.values():
        var.set(None)


def get_request_context() -> dict[str, str | None]:
    return {key: var.get() for key, var in _CONTEXT_VARS.items()}


@contextmanager
def session_context(user_id: str | None, device: str | None = None) -> Iterator[None]:
    """Scope identity and device to the block; the outer values come back on exit."""
    tokens = [(user_id_var, user_id_var.set(user_id)), (device_var, device_var.set(device))]
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


# ============================================================
# REDACTION
# ============================================================

_SENSITIVE_KEY = re.compile(r"token|secret|password|passwd|authorization|credential|jwt|bearer", re.I)
REDACTED = "[REDACTED]"


def _looks_like_token(value: str) -> bool:
    # Compact JWS serialization always opens with a base64url '{"'
    return len(value) > 20 and (value.startswith("eyJ") or value.startswith("Bearer "))


def mask_sensitive_data(data: Any, depth: int = 0, max_depth: int = 10) -> Any:
    """
    Return a copy of ``data`` that is safe to log.

    Values under token/secret-like keys become ``[REDACTED]``; loose strings
    that look like a JWT keep only their first eight characters. Containers
    nested deeper than ``max_depth`` are replaced by a marker.
    """
    if depth > max_depth:
        return "[MAX_DEPTH_EXCEEDED]"
    if isinstance(data, Mapping):
        return {
            key: REDACTED if _SENSITIVE_KEY.search(str(key)) else mask_sensitive_data(value, depth + 1, max_depth)
            for key, value in data.items()
        }
    if isinstance(data, list | tuple | set):
        return [mask_sensitive_data(item, depth + 1, max_depth) for item in data]
    if isinstance(data, str) and _looks_like_token(data):
        return data[:8] + "..." + REDACTED
    return data


# ============================================================
# FORMATTERS
# ============================================================

# Attributes every LogRecord carries; anything else arrived through ``extra``.
_BUILTIN_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _BUILTIN_RECORD_ATTRS and key not in CONTEXT_KEYS
    }


class JSONFormatter(logging.Formatter):
    """Render a record as a single JSON object."""

    def __init__(self, mask_sensitive: bool = True):
        super().__init__()
        self.mask_sensitive = mask_sensitive

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "source": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        for key, value in get_request_context().items():
            if value is not None:
                payload[key] = value

        if record.exc_info and record.exc_info[0] is not None:
            error = record.exc_info[1]
            payload["error"] = {
                "type": type(error).__name__,
                "message": str(error),
                "traceback": self.formatException(record.exc_info),
            }

        extra = _extra_fields(record)
        if extra:
            payload["extra"] = mask_sensitive_data(extra) if self.mask_sensitive else extra

        return json.dumps(payload, default=str)


class HumanFormatter(logging.Formatter):
    """Terminal output: ``time LEVEL logger:line [context] message``."""

    LEVEL_COLORS = {
        logging.DEBUG: "36",
        logging.INFO: "32",
        logging.WARNING: "33",
        logging.ERROR: "31",
        logging.CRITICAL: "35",
    }

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors

    def _level(self, record: logging.LogRecord) -> str:
        name = f"{record.levelname:<8}"
        color = self.LEVEL_COLORS.get(record.levelno)
        if self.use_colors and color:
            return f"\033[{color}m{name}\033[0m"
        return name

    def format(self, record: logging.LogRecord) -> str:
        ctx = get_request_context()
        tags = []
        if ctx["request_id"]:
            tags.append("req=" + ctx["request_id"][:8])
        if ctx["user_id"]:
            tags.append("user=" + ctx["user_id"])
        if ctx["device"]:
            tags.append("device=" + ctx["device"])

        stamp = datetime.fromtimestamp(record.created, UTC).strftime("%H:%M:%S.%f")[:-3]
        prefix = f"{stamp} {self._level(record)} {record.name}:{record.lineno} "
        if tags:
            prefix += "[" + " ".join(tags) + "] "
        text = prefix + record.getMessage()

        if record.exc_info:
            text += "\n" + self.formatException(record.exc_info)
        return text


_QUIET_LOGGERS = ("asyncio", "aiosqlite", "sqlalchemy.engine")


def configure_logging(
    level: str = "INFO",
    format: str = "json",
    mask_sensitive: bool = True,
    use_colors: bool = True,
) -> logging.Logger:
    """
    Install a single stdout handler on the root logger.

    ``format`` is ``"json"`` or ``"human"``; any previously installed root
    handlers are dropped so repeated calls do not duplicate output.
    """
    if format == "json":
        formatter: logging.Formatter = JSONFormatter(mask_sensitive=mask_sensitive)
    else:
        formatter = HumanFormatter(use_colors=use_colors and sys.stdout.isatty())

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level.upper())

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return root


class ContextLogger(logging.LoggerAdapter):
    """
    Adapter that copies the bound request context onto each record.

    Handlers other than ours (pytest's caplog, a syslog handler) then see
    identity and device as plain record attributes.
    """

    def __init__(self, logger: logging.Logger, extra: dict | None = None):
        super().__init__(logger, extra or {})

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        merged = {key: value for key, value in get_request_context().items() if value is not None}
        merged.update(self.extra)
        merged.update(kwargs.get("extra") or {})
        kwargs["extra"] = merged
        return msg, kwargs


def get_logger(name: str) -> ContextLogger:
    return ContextLogger(logging.getLogger(name))


# ============================================================
# AUDIT TRAIL
# ============================================================


class AuditLogger:
    """
    Audit trail for session mutations.

    One INFO record per admitted login, eviction, revocation, renewal and
    index repair, flagged with ``audit_event`` so it can be routed apart
    from diagnostic output.
    """

    def __init__(self, name: str = "devicegate.audit"):
        self._logger = logging.getLogger(name)

    def log(
        self,
        action: str,
        identity: str | None,
        device: str | None = None,
        details: dict[str, Any] | None = None,
        success: bool = True,
    ) -> None:
        self._logger.info(
            "audit %s identity=%s device=%s",
            action,
            identity,
            device or "*",
            extra={
                "audit_event": True,
                "action": action,
                "identity": identity,
                "target_device": device,
                "success": success,
                "details": mask_sensitive_data(details) if details else None,
                "request_id": request_id_var.get(),
            },
        )

    def login(self, identity: str, device: str, details: dict | None = None) -> None:
        self.log("login", identity, device, details)

    def evict(self, identity: str, device: str, details: dict | None = None) -> None:
        self.log("evict", identity, device, details)

    def revoke(self, identity: str, device: str | None, details: dict | None = None) -> None:
        """``device=None`` records a log-out-everywhere."""
        self.log("revoke", identity, device, details)

    def renew(self, identity: str, device: str, details: dict | None = None) -> None:
        self.log("renew", identity, device, details)

    def reconcile(self, identity: str, details: dict | None = None) -> None:
        self.log("reconcile", identity, details=details)


audit_logger = AuditLogger()


__all__ = [
    "set_request_context",
    "clear_request_context",
    "get_request_context",
    "session_context",
    "configure_logging",
    "get_logger",
    "ContextLogger",
    "JSONFormatter",
    "HumanFormatter",
    "AuditLogger",
    "audit_logger",
    "mask_sensitive_data",
    "request_id_var",
    "user_id_var",
    "device_var",
]
