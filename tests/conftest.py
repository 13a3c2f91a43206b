"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import time
from collections.abc import Callable, Generator

import pytest

from celeryport.adapters.memory_backend import InMemoryResultBackend
from celeryport.adapters.memory_broker import InMemoryBroker
from celeryport.client import CeleryClient


@pytest.fixture
def broker() -> InMemoryBroker:
    return InMemoryBroker()


@pytest.fixture
def backend() -> InMemoryResultBackend:
    return InMemoryResultBackend()


@pytest.fixture
def client(
    broker: InMemoryBroker, backend: InMemoryResultBackend
) -> Generator[CeleryClient, None, None]:
    """Client with two fast-polling executors, stopped after the test."""

    celery_client = CeleryClient(
        broker,
        backend,
        num_workers=2,
        receive_timeout=0.05,
        shutdown_grace_seconds=2.0,
    )
    try:
        yield celery_client
    finally:
        celery_client.stop_worker()


@pytest.fixture
def wait_until() -> Callable[..., bool]:
    """Poll a predicate until it holds or the timeout expires."""

    def _wait(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(0.01)
        return predicate()

    return _wait
