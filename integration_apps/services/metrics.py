"""CloudWatch custom metrics emitter with background batching.

Publishes per-call metrics (count, latency, errors) for every vendor API the
integration apps talk to (Petbooqz, Meta Graph, Twilio, host platform).

Design
------
* Metrics are collected in a thread-safe in-memory buffer.
* A daemon thread flushes the buffer to CloudWatch every
  ``FLUSH_INTERVAL_SECONDS`` (default 60 s).
* When running locally (``METRICS_ENABLED != "true"``), metrics are
  logged at DEBUG level but **not** pushed to CloudWatch.
* Each ``put_metric_data`` call sends up to 1 000 metric data points
  (the CloudWatch API limit per request).

Usage
-----
>>> from integration_apps.services.metrics import metrics
>>> metrics.record_success("petbooqz", "GET /calendars", latency_ms=123.4)
>>> metrics.record_failure("meta", "GET /me/accounts", error_kind="auth_invalid")
"""

from __future__ import annotations

import atexit
import logging
import os
import threading
import time
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

NAMESPACE = "IntegrationApps"
FLUSH_INTERVAL_SECONDS = 60
MAX_BATCH_SIZE = 1_000  # CloudWatch API limit per PutMetricData call


class MetricsClient:
    """Batched CloudWatch metrics publisher."""

    def __init__(self) -> None:
        self._enabled = os.getenv("METRICS_ENABLED", "false").lower() == "true"
        self._buffer: list[dict[str, Any]] = []
        self._lock = threading.Lock()
        self._cw_client = None  # lazy-init

        if self._enabled:
            self._start_flush_thread()

    # ── Lazy CloudWatch client ────────────────────────────────────────

    def _get_cw_client(self):
        if self._cw_client is None:
            import boto3

            self._cw_client = boto3.client("cloudwatch")
        return self._cw_client

    # ── Public API ────────────────────────────────────────────────────

    def record_success(self, vendor: str, operation: str, latency_ms: float) -> None:
        """Record a successful vendor call."""
        now = datetime.now(UTC)
        dims = [{"Name": "Vendor", "Value": vendor}]

        self._append(_point("VendorAPI/RequestCount", dims + [{"Name": "Status", "Value": "success"}], now, 1, "Count"))
        self._append(
            _point(
                "VendorAPI/Latency",
                dims + [{"Name": "Operation", "Value": operation}],
                now,
                latency_ms,
                "Milliseconds",
            )
        )
        logger.debug("Metric: %s %s success latency=%.1fms", vendor, operation, latency_ms)

    def record_failure(
        self,
        vendor: str,
        operation: str,
        error_kind: str,
        latency_ms: float = 0,
    ) -> None:
        """Record a failed vendor call, dimensioned by error kind."""
        now = datetime.now(UTC)
        dims = [{"Name": "Vendor", "Value": vendor}]

        self._append(_point("VendorAPI/RequestCount", dims + [{"Name": "Status", "Value": "failure"}], now, 1, "Count"))
        self._append(_point("VendorAPI/ErrorCount", dims + [{"Name": "ErrorKind", "Value": error_kind}], now, 1, "Count"))
        if latency_ms > 0:
            self._append(
                _point(
                    "VendorAPI/Latency",
                    dims + [{"Name": "Operation", "Value": operation}],
                    now,
                    latency_ms,
                    "Milliseconds",
                )
            )
        logger.debug(
            "Metric: %s %s failure kind=%s latency=%.1fms",
            vendor, operation, error_kind, latency_ms,
        )

    def flush(self) -> int:
        """Send buffered metrics to CloudWatch.  Returns count sent."""
        with self._lock:
            if not self._buffer:
                return 0
            batch = self._buffer[:]
            self._buffer.clear()

        if not self._enabled:
            logger.debug("Metrics flush skipped (not enabled): %d items", len(batch))
            return 0

        sent = 0
        try:
            cw = self._get_cw_client()
            for i in range(0, len(batch), MAX_BATCH_SIZE):
                chunk = batch[i : i + MAX_BATCH_SIZE]
                cw.put_metric_data(Namespace=NAMESPACE, MetricData=chunk)
                sent += len(chunk)
            logger.info("Flushed %d metrics to CloudWatch", sent)
        except Exception:
            logger.exception("Failed to flush metrics to CloudWatch")
        return sent

    # ── Internal ──────────────────────────────────────────────────────

    def _append(self, metric_data: dict[str, Any]) -> None:
        with self._lock:
            self._buffer.append(metric_data)

    def _start_flush_thread(self) -> None:
        def _loop():
            while True:
                time.sleep(FLUSH_INTERVAL_SECONDS)
                try:
                    self.flush()
                except Exception:
                    logger.exception("Metrics flush thread error")

        t = threading.Thread(target=_loop, daemon=True, name="metrics-flush")
        t.start()
        atexit.register(self.flush)
        logger.info("Metrics flush thread started (interval=%ds)", FLUSH_INTERVAL_SECONDS)


def _point(
    name: str,
    dimensions: list[dict[str, str]],
    timestamp: datetime,
    value: float,
    unit: str,
) -> dict[str, Any]:
    return {
        "MetricName": name,
        "Dimensions": dimensions,
        "Timestamp": timestamp,
        "Value": value,
        "Unit": unit,
    }


# ── Module-level singleton ──────────────────────────────────────────
metrics = MetricsClient()
