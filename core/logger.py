"""Structured JSON logger for the multisig custodian.

Module purpose and system role:
    - Provide audit logging with a consistent schema for every
      authorization decision (accepted or rejected).
    - Emits JSON lines that can be ingested by log shippers.

Integration points and dependencies:
    - ``requests`` is used to forward high-risk events to ops webhooks.
    - Other modules instantiate ``StructuredLogger`` to record events.

Test hooks:
    - ``register_hook`` lets test suites observe log output.
    - Paths are resolved on every write so ``LOG_DIR`` / ``<MODULE>_LOG``
      can be redirected after import.
"""

from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List

import requests


def _error_log_file() -> Path:
    """Return the configured error log file path."""

    return Path(os.getenv("ERROR_LOG_FILE", "logs/errors.log"))


def make_json_safe(value: Any) -> Any:
    """Return ``value`` converted to something ``json.dumps`` accepts."""

    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {str(k): make_json_safe(v) for k, v in value.items()}
    if isinstance(value, (set, frozenset)):
        return sorted(make_json_safe(v) for v in value)
    if isinstance(value, (list, tuple)):
        return [make_json_safe(v) for v in value]
    if isinstance(value, Path):
        return str(value)
    return value


def _append(path: Path, entry: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a") as fh:
        fh.write(json.dumps(make_json_safe(entry)) + "\n")


def log_error(
    module: str,
    error: str,
    *,
    tx_id: str | int = "",
    risk_level: str = "",
    trace_id: str | None = None,
    **extra: Any,
) -> None:
    """Write structured error entry to ``logs/errors.log``."""

    if trace_id is None:
        trace_id = os.getenv("TRACE_ID", "")
    entry = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "module": module,
        "error": error,
        "tx_id": tx_id,
        "risk_level": risk_level,
        "trace_id": trace_id,
        **extra,
    }
    _append(_error_log_file(), entry)


_HOOKS: List[Callable[[Dict[str, Any]], None]] = []


def _alert_webhooks() -> List[str]:
    return [w for w in os.getenv("OPS_ALERT_WEBHOOK", "").split(",") if w]


def _send_alert(module: str, message: str) -> None:
    for url in _alert_webhooks():
        try:  # pragma: no cover - network
            requests.post(url, json={"text": message}, timeout=5)
        except requests.RequestException as exc:  # pragma: no cover - network
            log_error(module, f"alert delivery failed: {exc}", event="alert_fail", url=url)


def register_hook(func: Callable[[Dict[str, Any]], None]) -> None:
    """Register ``func`` to receive every log entry."""
    _HOOKS.append(func)


def unregister_hook(func: Callable[[Dict[str, Any]], None]) -> None:
    """Stop broadcasting entries to ``func``."""
    if func in _HOOKS:
        _HOOKS.remove(func)


class StructuredLogger:
    """Write structured JSON logs to file and broadcast to hooks."""

    def __init__(self, module: str, log_file: str | None = None) -> None:
        self.module = module
        self._log_file = log_file

    @property
    def path(self) -> Path:
        if self._log_file is not None:
            return Path(self._log_file)
        env_var = f"{self.module.upper()}_LOG"
        default = Path(os.getenv("LOG_DIR", "logs")) / f"{self.module}.json"
        return Path(os.getenv(env_var, str(default)))

    # ------------------------------------------------------------------
    def log(
        self,
        event: str,
        *,
        tx_id: str | int = "",
        risk_level: str = "",
        error: str | None = None,
        trace_id: str | None = None,
        **extra: Any,
    ) -> None:
        """Append log entry to file and send to hooks."""

        if trace_id is None:
            trace_id = os.getenv("TRACE_ID", "")
        entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event": event,
            "module": self.module,
            "tx_id": tx_id,
            "risk_level": risk_level,
            "error": error,
            "trace_id": trace_id,
        }
        entry.update(make_json_safe(extra))
        _append(self.path, entry)
        for hook in list(_HOOKS):
            try:
                hook(entry)
            except Exception as exc:
                # log hook errors but do not interrupt logging
                log_error(self.module, f"hook error: {exc}", event="hook_fail", trace_id=trace_id)
        if error:
            log_error(
                self.module,
                error,
                event=event,
                tx_id=tx_id,
                risk_level=risk_level,
                trace_id=trace_id,
            )
        if error or risk_level == "high":
            _send_alert(self.module, f"{self.module}:{event}:{error or ''}")
