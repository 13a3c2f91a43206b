"""In-process result store for single-process deployments and tests."""

from __future__ import annotations

import threading

from celeryport.config.logging_config import get_logger
from celeryport.ports.result_backend import ResultBackendPort

logger = get_logger(__name__)


class InMemoryResultBackend(ResultBackendPort):
    """Result store keeping encoded records in a locked dict."""

    def __init__(self) -> None:
        self._records: dict[str, bytes] = {}
        self._lock = threading.Lock()

    def get_result(self, task_id: str) -> bytes | None:
        with self._lock:
            return self._records.get(task_id)

    def set_result(self, task_id: str, payload: bytes) -> None:
        with self._lock:
            if task_id in self._records:
                logger.warning("result_already_stored", task_id=task_id)
                return
            self._records[task_id] = payload

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


__all__ = ["InMemoryResultBackend"]
