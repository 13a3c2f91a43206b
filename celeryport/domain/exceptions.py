"""Exception hierarchy for celeryport.

Send and store failures are raised to the immediate caller. Task failures are
terminal outcomes read back from the result store.
"""

from __future__ import annotations

from typing import Any


class CeleryPortError(Exception):
    """Base exception for all library errors."""

    pass


class EncodeError(CeleryPortError):
    """Task arguments or a task result could not be serialized."""

    pass


class DecodeError(CeleryPortError):
    """A message envelope or task body could not be decoded."""

    pass


class TransportError(CeleryPortError):
    """The broker failed to send or receive a message."""

    pass


class StoreError(CeleryPortError):
    """The result store failed to read or write a record."""

    pass


class TaskFailedError(CeleryPortError):
    """The task ran and its handler reported a failure."""

    def __init__(
        self, task_id: str, result: Any = None, traceback: str | None = None
    ) -> None:
        """Initialize with the stored failure payload."""
        self.task_id = task_id
        self.result = result
        self.traceback = traceback
        super().__init__(f"Task {task_id} failed: {_describe_failure(result)}")


class TaskTimeoutError(CeleryPortError, TimeoutError):
    """No terminal result appeared before the wait expired."""

    def __init__(self, task_id: str, elapsed: float, timeout: float) -> None:
        """Initialize with the waited identity and durations in seconds."""
        self.task_id = task_id
        self.elapsed = elapsed
        self.timeout = timeout
        super().__init__(
            f"Timed out after {elapsed:.3f}s (timeout {timeout}s) "
            f"waiting for result of task {task_id}"
        )


def _describe_failure(result: Any) -> str:
    if isinstance(result, dict):
        exc_type = result.get("exc_type")
        exc_message = result.get("exc_message")
        if isinstance(exc_message, list):
            exc_message = ", ".join(str(part) for part in exc_message)
        if exc_type and exc_message is not None:
            return f"{exc_type}: {exc_message}"
        if exc_message is not None:
            return str(exc_message)
    return str(result)


__all__ = [
    "CeleryPortError",
    "DecodeError",
    "EncodeError",
    "StoreError",
    "TaskFailedError",
    "TaskTimeoutError",
    "TransportError",
]
