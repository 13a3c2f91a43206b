from __future__ import annotations

import pytest
from pytest_mock import MockerFixture

from celeryport.adapters.factory import create_backend, create_broker
from celeryport.adapters.memory_backend import InMemoryResultBackend
from celeryport.adapters.memory_broker import InMemoryBroker
from celeryport.adapters.redis_backend import RedisResultBackend
from celeryport.adapters.redis_broker import RedisBroker
from celeryport.config.settings import Settings


def test_memory_urls_select_in_process_adapters() -> None:
    settings = Settings(broker_url="memory://", result_backend_url="memory://")

    assert isinstance(create_broker(settings), InMemoryBroker)
    assert isinstance(create_backend(settings), InMemoryResultBackend)


@pytest.mark.parametrize("url", ["redis://localhost:6379/0", "rediss://cache:6380/0"])
def test_redis_urls_select_redis_adapters(mocker: MockerFixture, url: str) -> None:
    from_url = mocker.patch("redis.Redis.from_url")
    settings = Settings(
        broker_url=url,
        result_backend_url=url,
        queue_name="jobs",
        result_ttl_seconds=30,
    )

    broker = create_broker(settings)
    backend = create_backend(settings)

    assert isinstance(broker, RedisBroker)
    assert broker.queue_name == "jobs"
    assert isinstance(backend, RedisResultBackend)
    assert backend.ttl_seconds == 30
    assert from_url.call_count == 2


@pytest.mark.parametrize("url", ["amqp://guest@localhost//", "localhost:6379"])
def test_unsupported_urls_are_rejected(url: str) -> None:
    settings = Settings(broker_url=url, result_backend_url=url)

    with pytest.raises(ValueError):
        create_broker(settings)
    with pytest.raises(ValueError):
        create_backend(settings)
