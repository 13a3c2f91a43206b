"""Celery-protocol task client and worker pool."""

from celeryport.adapters.memory_backend import InMemoryResultBackend
from celeryport.adapters.memory_broker import InMemoryBroker
from celeryport.adapters.redis_backend import RedisResultBackend
from celeryport.adapters.redis_broker import RedisBroker
from celeryport.async_result import AsyncResult
from celeryport.client import CeleryClient, create_client
from celeryport.domain.exceptions import (
    CeleryPortError,
    DecodeError,
    EncodeError,
    StoreError,
    TaskFailedError,
    TaskTimeoutError,
    TransportError,
)
from celeryport.domain.messages import (
    CeleryMessage,
    ResultMessage,
    ResultStatus,
    TaskMessage,
)
from celeryport.ports.broker import BrokerPort
from celeryport.ports.result_backend import ResultBackendPort
from celeryport.workers.pool import WorkerPool

__all__ = [
    "AsyncResult",
    "BrokerPort",
    "CeleryClient",
    "CeleryMessage",
    "CeleryPortError",
    "DecodeError",
    "EncodeError",
    "InMemoryBroker",
    "InMemoryResultBackend",
    "RedisBroker",
    "RedisResultBackend",
    "ResultBackendPort",
    "ResultMessage",
    "ResultStatus",
    "StoreError",
    "TaskFailedError",
    "TaskMessage",
    "TaskTimeoutError",
    "TransportError",
    "WorkerPool",
    "create_client",
]
