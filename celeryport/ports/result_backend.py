"""Port definition for result stores."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class ResultBackendPort(Protocol):
    """Get/set capability for encoded result records keyed by task id.

    Implementations must be safe for concurrent readers and writers and must
    provide read-your-writes consistency per task id.
    """

    def get_result(self, task_id: str) -> bytes | None:
        """Return the stored record, or None while the task is pending.

        Raises:
            StoreError: If the lookup failed
        """

    def set_result(self, task_id: str, payload: bytes) -> None:
        """Store a record unless one already exists for ``task_id``.

        Raises:
            StoreError: If the write failed
        """


__all__ = ["ResultBackendPort"]
