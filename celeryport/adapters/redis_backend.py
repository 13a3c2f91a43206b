"""Redis implementation of the result store port."""

from __future__ import annotations

from typing import Final

from redis import Redis, RedisError

from celeryport.config.logging_config import get_logger
from celeryport.domain.exceptions import StoreError
from celeryport.ports.result_backend import ResultBackendPort

RESULT_KEY_PREFIX: Final[str] = "celery-task-meta-"
DEFAULT_RESULT_TTL_SECONDS: Final[int] = 60 * 60 * 24

logger = get_logger(__name__)


class RedisResultBackend(ResultBackendPort):
    """Result store keeping Celery result meta records in Redis strings."""

    def __init__(
        self,
        *,
        redis_conn: Redis,
        ttl_seconds: int = DEFAULT_RESULT_TTL_SECONDS,
        key_prefix: str = RESULT_KEY_PREFIX,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.redis = redis_conn
        self.ttl_seconds = ttl_seconds
        self.key_prefix = key_prefix

    def _key(self, task_id: str) -> str:
        return f"{self.key_prefix}{task_id}"

    def get_result(self, task_id: str) -> bytes | None:
        try:
            raw = self.redis.get(self._key(task_id))
        except RedisError as exc:
            raise StoreError(f"Failed to read result for {task_id}") from exc
        if raw is None:
            return None
        if isinstance(raw, str):
            return raw.encode("utf-8")
        return raw

    def set_result(self, task_id: str, payload: bytes) -> None:
        try:
            stored = self.redis.set(
                self._key(task_id), payload, ex=self.ttl_seconds, nx=True
            )
        except RedisError as exc:
            raise StoreError(f"Failed to store result for {task_id}") from exc
        if not stored:
            logger.warning("result_already_stored", task_id=task_id)


def create_redis_result_backend(
    url: str, *, ttl_seconds: int = DEFAULT_RESULT_TTL_SECONDS
) -> RedisResultBackend:
    return RedisResultBackend(redis_conn=Redis.from_url(url), ttl_seconds=ttl_seconds)


__all__ = [
    "RESULT_KEY_PREFIX",
    "RedisResultBackend",
    "create_redis_result_backend",
]
