"""In-process broker for single-process deployments and tests."""

from __future__ import annotations

import queue

from celeryport.domain.messages import CeleryMessage
from celeryport.ports.broker import BrokerPort


class InMemoryBroker(BrokerPort):
    """Broker backed by a thread-safe FIFO of encoded envelopes.

    Envelopes are stored as bytes so the same encode/decode path runs as with
    a network transport.
    """

    def __init__(self, queue_name: str = "celery") -> None:
        self.queue_name = queue_name
        self._queue: queue.Queue[bytes] = queue.Queue()

    def send(self, message: CeleryMessage) -> None:
        self._queue.put(message.to_bytes())

    def receive(self, timeout: float) -> CeleryMessage | None:
        try:
            raw = self._queue.get(timeout=max(timeout, 0.0))
        except queue.Empty:
            return None
        return CeleryMessage.from_bytes(raw)

    def qsize(self) -> int:
        """Number of envelopes waiting for a consumer."""
        return self._queue.qsize()


__all__ = ["InMemoryBroker"]
