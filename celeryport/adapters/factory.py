"""Adapter selection from configured URLs."""

from __future__ import annotations

from typing import Final
from urllib.parse import urlparse

from celeryport.adapters.memory_backend import InMemoryResultBackend
from celeryport.adapters.memory_broker import InMemoryBroker
from celeryport.adapters.redis_backend import create_redis_result_backend
from celeryport.adapters.redis_broker import create_redis_broker
from celeryport.config.logging_config import get_logger
from celeryport.config.settings import Settings
from celeryport.ports.broker import BrokerPort
from celeryport.ports.result_backend import ResultBackendPort

REDIS_SCHEMES: Final[frozenset[str]] = frozenset({"redis", "rediss", "unix"})
MEMORY_SCHEME: Final[str] = "memory"

logger = get_logger(__name__)


def _scheme(url: str) -> str:
    scheme = urlparse(url).scheme.lower()
    if not scheme:
        raise ValueError(f"URL has no scheme: {url!r}")
    return scheme


def create_broker(settings: Settings) -> BrokerPort:
    """Build the broker adapter named by ``settings.broker_url``."""

    scheme = _scheme(settings.broker_url)
    if scheme in REDIS_SCHEMES:
        broker: BrokerPort = create_redis_broker(
            settings.broker_url, queue_name=settings.queue_name
        )
    elif scheme == MEMORY_SCHEME:
        broker = InMemoryBroker(queue_name=settings.queue_name)
    else:
        raise ValueError(f"Unsupported broker scheme: {scheme}")

    logger.info("broker_created", scheme=scheme, queue=settings.queue_name)
    return broker


def create_backend(settings: Settings) -> ResultBackendPort:
    """Build the result store adapter named by ``settings.result_backend_url``."""

    scheme = _scheme(settings.result_backend_url)
    if scheme in REDIS_SCHEMES:
        backend: ResultBackendPort = create_redis_result_backend(
            settings.result_backend_url, ttl_seconds=settings.result_ttl_seconds
        )
    elif scheme == MEMORY_SCHEME:
        backend = InMemoryResultBackend()
    else:
        raise ValueError(f"Unsupported result backend scheme: {scheme}")

    logger.info("result_backend_created", scheme=scheme)
    return backend


__all__ = ["create_backend", "create_broker"]
