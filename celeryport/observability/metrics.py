"""Prometheus metrics for task dispatch and execution."""

from __future__ import annotations

import threading
from typing import Final

from prometheus_client import Counter, Histogram, start_http_server

from celeryport.config.logging_config import get_logger

logger = get_logger(__name__)

TASKS_SENT_TOTAL: Final[Counter] = Counter(
    "celeryport_tasks_sent_total",
    "Total number of tasks published to the broker",
    labelnames=("task",),
)

TASKS_PROCESSED_TOTAL: Final[Counter] = Counter(
    "celeryport_tasks_processed_total",
    "Total number of tasks executed by worker pools",
    labelnames=("task", "status"),
)

TASK_DURATION_SECONDS: Final[Histogram] = Histogram(
    "celeryport_task_duration_seconds",
    "Duration of task handler execution in seconds",
    labelnames=("task",),
)

_EXPORTER_LOCK = threading.Lock()
_EXPORTER_STARTED = False


def ensure_metrics_exporter(port: int) -> None:
    """Start the Prometheus HTTP exporter once per process."""

    global _EXPORTER_STARTED
    with _EXPORTER_LOCK:
        if _EXPORTER_STARTED:
            return

        try:
            start_http_server(port)
        except OSError as exc:
            logger.error("metrics_exporter_start_failed", port=port, error=str(exc))
            raise

        _EXPORTER_STARTED = True
        logger.info("metrics_exporter_started", port=port)


__all__ = [
    "TASKS_PROCESSED_TOTAL",
    "TASKS_SENT_TOTAL",
    "TASK_DURATION_SECONDS",
    "ensure_metrics_exporter",
]
