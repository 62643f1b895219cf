"""Prometheus metrics for the multisig custodian.

Module purpose and system role:
    - Count authorizations, rejections and recovered signatures.
    - Expose an HTTP ``/metrics`` endpoint consumable by Prometheus.

Integration points and dependencies:
    - ``prometheus_client`` counters plus an in-process mirror that tests
      and the CLI can read without scraping.
    - ``MetricsServer`` serves ``generate_latest()`` over ``http.server``;
      ``METRICS_PORT`` overrides the port and ``METRICS_TOKEN`` enables bearer auth.
"""

from __future__ import annotations

import os
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Dict, cast

from prometheus_client import CONTENT_TYPE_LATEST, Counter, generate_latest

_METRICS: Dict[str, Any] = {
    "transfers": {},
    "rejections": {},
    "signatures_recovered": 0,
    "transactions_requested": 0,
    "confirmations": {},
}
_LOCK = threading.Lock()

PROM_TRANSFERS = Counter(
    "multisig_transfers_total", "Token transfers released by the custodian", ["path"]
)
PROM_REJECTIONS = Counter(
    "multisig_rejections_total", "Rejected custodian operations", ["reason"]
)
PROM_RECOVERED = Counter(
    "multisig_signatures_recovered_total", "Signatures successfully recovered"
)
PROM_REQUESTED = Counter(
    "multisig_transactions_requested_total", "Stepwise transactions requested"
)
PROM_CONFIRMATIONS = Counter(
    "multisig_confirmations_total", "Stepwise confirmations recorded", ["vote"]
)


def _bump(bucket: str, key: str) -> None:
    counts = cast(Dict[str, int], _METRICS[bucket])
    counts[key] = counts.get(key, 0) + 1


# ----------------------------------------------------------------------
# Metric update helpers
# ----------------------------------------------------------------------

def record_transfer(path: str) -> None:
    """Record a released transfer; ``path`` is ``bundle`` or ``stepwise``."""
    with _LOCK:
        _bump("transfers", path)
    PROM_TRANSFERS.labels(path=path).inc()


def record_rejection(reason: str) -> None:
    with _LOCK:
        _bump("rejections", reason)
    PROM_REJECTIONS.labels(reason=reason).inc()


def record_signature_recovered(count: int = 1) -> None:
    with _LOCK:
        _METRICS["signatures_recovered"] = cast(int, _METRICS["signatures_recovered"]) + count
    PROM_RECOVERED.inc(count)


def record_transaction_requested() -> None:
    with _LOCK:
        _METRICS["transactions_requested"] = cast(int, _METRICS["transactions_requested"]) + 1
    PROM_REQUESTED.inc()


def record_confirmation(confirm: bool) -> None:
    vote = "confirm" if confirm else "reject"
    with _LOCK:
        _bump("confirmations", vote)
    PROM_CONFIRMATIONS.labels(vote=vote).inc()


def get_metrics() -> Dict[str, Any]:
    """Return a copy of the in-process counters."""
    with _LOCK:
        return {k: dict(v) if isinstance(v, dict) else v for k, v in _METRICS.items()}


def reset_metrics() -> None:
    """Zero the in-process mirror. Prometheus counters are monotonic and kept."""
    with _LOCK:
        for key, val in _METRICS.items():
            _METRICS[key] = {} if isinstance(val, dict) else 0


# ----------------------------------------------------------------------
# Metrics server
# ----------------------------------------------------------------------

class _Handler(BaseHTTPRequestHandler):
    """Serve metrics data for Prometheus scraping."""

    def do_GET(self) -> None:
        token = os.getenv("METRICS_TOKEN")
        if token and self.headers.get("Authorization") != f"Bearer {token}":
            self.send_response(401)
            self.end_headers()
            return
        if self.path != "/metrics":
            self.send_response(404)
            self.end_headers()
            return
        body = generate_latest()
        self.send_response(200)
        self.send_header("Content-Type", CONTENT_TYPE_LATEST)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format: str, *args: Any) -> None:
        pass  # no stderr access log


class MetricsServer:
    """Background metrics HTTP server."""

    def __init__(self, host: str = "0.0.0.0", port: int | None = None) -> None:
        port = int(os.getenv("METRICS_PORT", 8000 if port is None else port))
        try:
            self.server = HTTPServer((host, port), _Handler)
        except OSError as exc:  # pragma: no cover - runtime check
            if "Address already in use" in str(exc):
                raise OSError(
                    f"Port {port} already in use. Set METRICS_PORT or pass --port."
                ) from exc
            raise
        self.thread = threading.Thread(target=self.server.serve_forever, daemon=True)

    @property
    def address(self) -> str:
        host, port = self.server.server_address[:2]
        return f"{host}:{port}"

    def start(self) -> None:
        self.thread.start()

    def stop(self) -> None:
        self.server.shutdown()
        self.server.server_close()
        self.thread.join()
