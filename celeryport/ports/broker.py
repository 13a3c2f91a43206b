"""Port definition for message brokers."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from celeryport.domain.messages import CeleryMessage


@runtime_checkable
class BrokerPort(Protocol):
    """Send/receive capability shared by producers and worker executors.

    Implementations must be safe to call from several threads at once. A sent
    message is delivered to exactly one consumer, at least once.
    """

    def send(self, message: CeleryMessage) -> None:
        """Publish a message envelope.

        Raises:
            TransportError: If the broker rejected or failed the publish
        """

    def receive(self, timeout: float) -> CeleryMessage | None:
        """Block up to ``timeout`` seconds for the next envelope.

        Returns:
            The envelope, or None when nothing arrived in time

        Raises:
            TransportError: If the broker connection failed
            DecodeError: If the delivered payload is not an envelope
        """


__all__ = ["BrokerPort"]
