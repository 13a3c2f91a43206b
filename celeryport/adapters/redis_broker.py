"""Redis implementation of the broker port.

Uses the list layout of Celery's Redis transport: producers LPUSH JSON
envelopes onto the queue key and consumers BRPOP from the other end.
"""

from __future__ import annotations

from redis import Redis, RedisError

from celeryport.config.logging_config import get_logger
from celeryport.domain.exceptions import TransportError
from celeryport.domain.messages import DEFAULT_QUEUE, CeleryMessage
from celeryport.ports.broker import BrokerPort

logger = get_logger(__name__)


class RedisBroker(BrokerPort):
    """Broker backed by a Redis list."""

    def __init__(self, *, redis_conn: Redis, queue_name: str = DEFAULT_QUEUE) -> None:
        self.redis = redis_conn
        self.queue_name = queue_name

    def send(self, message: CeleryMessage) -> None:
        try:
            self.redis.lpush(self.queue_name, message.to_bytes())
        except RedisError as exc:
            logger.error("broker_send_failed", queue=self.queue_name, error=str(exc))
            raise TransportError(f"Failed to publish to {self.queue_name}") from exc

    def receive(self, timeout: float) -> CeleryMessage | None:
        try:
            # result is (queue_name, payload)
            result = self.redis.brpop([self.queue_name], timeout=timeout)
        except RedisError as exc:
            raise TransportError(f"Failed to receive from {self.queue_name}") from exc

        if result is None:
            return None
        return CeleryMessage.from_bytes(result[1])


def create_redis_broker(url: str, *, queue_name: str = DEFAULT_QUEUE) -> RedisBroker:
    return RedisBroker(redis_conn=Redis.from_url(url), queue_name=queue_name)


__all__ = ["RedisBroker", "create_redis_broker"]
