"""Handle for retrieving the outcome of a dispatched task."""

from __future__ import annotations

import time
from typing import Any, Final

from celeryport.config.logging_config import get_logger
from celeryport.domain.exceptions import (
    DecodeError,
    StoreError,
    TaskFailedError,
    TaskTimeoutError,
)
from celeryport.domain.messages import ResultMessage, ResultStatus
from celeryport.ports.result_backend import ResultBackendPort

logger = get_logger(__name__)

DEFAULT_POLL_INTERVAL_SECONDS: Final[float] = 0.05
DEFAULT_POLL_MAX_INTERVAL_SECONDS: Final[float] = 0.5
_POLL_BACKOFF_FACTOR: Final[float] = 1.5


class AsyncResult:
    """Read-side view of one task's result record.

    The handle caches nothing: every call queries the result store again, so
    handles created in different processes for the same task id agree.
    """

    def __init__(
        self,
        task_id: str,
        backend: ResultBackendPort,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
        poll_max_interval: float = DEFAULT_POLL_MAX_INTERVAL_SECONDS,
    ) -> None:
        self.task_id = task_id
        self._backend = backend
        self.poll_interval = poll_interval
        self.poll_max_interval = poll_max_interval

    def __repr__(self) -> str:
        return f"<AsyncResult: {self.task_id}>"

    def try_get(self) -> Any:
        """Look the result up once without waiting.

        Returns:
            The task's return value, or None while the task is pending. A task
            that returned None is indistinguishable here; use ``ready()``,
            ``status()`` or ``get()`` when that matters.

        Raises:
            StoreError: If the result store lookup failed
            TaskFailedError: If the task finished with a failure
        """
        record = self._fetch()
        if record is None:
            return None
        return self._outcome(record)

    def ready(self) -> bool:
        """Return True once any record exists for the task.

        Raises:
            StoreError: If the result store lookup failed
        """
        return self._backend.get_result(self.task_id) is not None

    def status(self) -> ResultStatus:
        """Return the stored state, PENDING while no record exists.

        Unknown states written by other implementations read as FAILURE.

        Raises:
            StoreError: If the result store lookup or decoding failed
        """
        raw = self._backend.get_result(self.task_id)
        if raw is None:
            return ResultStatus.PENDING
        status = self._decode(raw).status
        try:
            return ResultStatus(status)
        except ValueError:
            return ResultStatus.FAILURE

    def get(
        self,
        timeout: float,
        *,
        interval: float | None = None,
        max_interval: float | None = None,
    ) -> Any:
        """Wait up to ``timeout`` seconds for the task to finish.

        Polls the result store, sleeping between polls with a backoff that
        starts at ``interval`` and grows to ``max_interval``. Store errors
        while waiting are logged and count as "not ready yet".

        Args:
            timeout: Total wait in seconds; individual store calls are not bounded
            interval: First sleep between polls in seconds; defaults to the
                handle's ``poll_interval``
            max_interval: Longest sleep between polls in seconds; defaults to the
                handle's ``poll_max_interval``

        Returns:
            The task's return value

        Raises:
            TaskFailedError: As soon as a failure record is observed
            TaskTimeoutError: If no terminal record appeared within ``timeout``
        """
        if interval is None:
            interval = self.poll_interval
        if max_interval is None:
            max_interval = self.poll_max_interval
        if interval <= 0 or max_interval <= 0:
            raise ValueError("poll intervals must be positive")

        start = time.monotonic()
        deadline = start + max(timeout, 0.0)
        delay = min(interval, max_interval)
        attempts = 0

        while True:
            attempts += 1
            try:
                record = self._fetch()
            except StoreError as exc:
                logger.warning(
                    "result_poll_store_error",
                    task_id=self.task_id,
                    attempt=attempts,
                    error=str(exc),
                )
                record = None

            if record is not None:
                return self._outcome(record)

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                elapsed = time.monotonic() - start
                logger.info(
                    "result_wait_timed_out",
                    task_id=self.task_id,
                    elapsed_seconds=elapsed,
                    attempts=attempts,
                )
                raise TaskTimeoutError(self.task_id, elapsed=elapsed, timeout=timeout)

            time.sleep(min(delay, remaining))
            delay = min(delay * _POLL_BACKOFF_FACTOR, max_interval)

    # Internal helpers -------------------------------------------------

    def _fetch(self) -> ResultMessage | None:
        """Return the terminal record, or None while the task is not finished."""
        raw = self._backend.get_result(self.task_id)
        if raw is None:
            return None
        record = self._decode(raw)
        if not record.is_ready:
            return None
        return record

    def _decode(self, raw: bytes) -> ResultMessage:
        try:
            return ResultMessage.from_bytes(raw)
        except DecodeError as exc:
            raise StoreError(f"Unreadable result record for {self.task_id}") from exc

    def _outcome(self, record: ResultMessage) -> Any:
        if record.is_success:
            return record.result
        raise TaskFailedError(self.task_id, record.result, record.traceback)


__all__ = [
    "DEFAULT_POLL_INTERVAL_SECONDS",
    "DEFAULT_POLL_MAX_INTERVAL_SECONDS",
    "AsyncResult",
]
