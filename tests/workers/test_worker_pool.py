from __future__ import annotations

import sys
import threading
import time
from collections.abc import Callable

import pytest
from pytest_mock import MockerFixture

from celeryport.adapters.memory_backend import InMemoryResultBackend
from celeryport.adapters.memory_broker import InMemoryBroker
from celeryport.domain.exceptions import StoreError, TransportError
from celeryport.domain.messages import (
    CeleryMessage,
    MessageProperties,
    ResultMessage,
    TaskMessage,
)
from celeryport.workers.pool import UNREGISTERED_EXC_TYPE, WorkerPool


def worker_thread_count() -> int:
    return sum(
        1
        for thread in threading.enumerate()
        if thread.name.startswith("celeryport-worker-") and thread.is_alive()
    )


def _add(x: int, y: int) -> int:
    return x + y


def _boom() -> None:
    raise ValueError("bad input")


def _pool(
    broker: InMemoryBroker | None = None,
    backend: InMemoryResultBackend | None = None,
    num_workers: int = 2,
    **kwargs: float,
) -> WorkerPool:
    pool = WorkerPool(
        broker if broker is not None else InMemoryBroker(),
        backend if backend is not None else InMemoryResultBackend(),
        num_workers,
        receive_timeout=0.05,
        **kwargs,
    )
    pool.register("add", _add)
    pool.register("boom", _boom)
    return pool


def _stored(backend: InMemoryResultBackend, task_id: str) -> ResultMessage | None:
    raw = backend.get_result(task_id)
    return ResultMessage.from_bytes(raw) if raw is not None else None


def test_execute_returns_success_record() -> None:
    task = TaskMessage.create("add", [2, 3])

    record = _pool().execute(task)

    assert record.is_success
    assert record.task_id == task.id
    assert record.result == 5


def test_execute_passes_keyword_arguments() -> None:
    pool = _pool()
    pool.register("greet", lambda name, punctuation=".": f"hi {name}{punctuation}")

    record = pool.execute(TaskMessage.create("greet", ["ada"], {"punctuation": "!"}))

    assert record.result == "hi ada!"


def test_execute_records_handler_failure() -> None:
    record = _pool().execute(TaskMessage.create("boom"))

    assert not record.is_success
    assert record.result == {"exc_type": "ValueError", "exc_message": "bad input"}
    assert record.traceback is not None
    assert "ValueError: bad input" in record.traceback


def _quit() -> None:
    sys.exit("bye")


def _interrupt() -> None:
    raise KeyboardInterrupt


@pytest.mark.parametrize(
    ("handler", "exc_type"),
    [(_quit, "SystemExit"), (_interrupt, "KeyboardInterrupt")],
)
def test_execute_records_interpreter_exit_from_handler(
    handler: Callable[[], None], exc_type: str
) -> None:
    pool = _pool()
    pool.register("quit", handler)

    record = pool.execute(TaskMessage.create("quit"))

    assert not record.is_success
    assert record.result["exc_type"] == exc_type
    assert record.traceback is not None


def test_execute_records_unregistered_task() -> None:
    record = _pool().execute(TaskMessage.create("ghost"))

    assert not record.is_success
    assert record.result == {
        "exc_type": UNREGISTERED_EXC_TYPE,
        "exc_message": "unregistered task: ghost",
    }


def test_execute_records_unserializable_return_value() -> None:
    pool = _pool()
    pool.register("opaque", lambda: object())

    record = pool.execute(TaskMessage.create("opaque"))

    assert not record.is_success
    assert record.result["exc_type"] == "EncodeError"


def test_process_message_stores_record() -> None:
    backend = InMemoryResultBackend()
    task = TaskMessage.create("add", [20, 22])

    record = _pool(backend=backend).process_message(CeleryMessage.wrap(task))

    assert record is not None
    stored = _stored(backend, task.id)
    assert stored is not None
    assert stored.result == 42


def test_process_message_drops_undecodable_body() -> None:
    backend = InMemoryResultBackend()
    message = CeleryMessage(body="%%%", properties=MessageProperties(correlation_id="x"))

    assert _pool(backend=backend).process_message(message) is None
    assert len(backend) == 0


def test_process_message_survives_store_failure(mocker: MockerFixture) -> None:
    backend = mocker.Mock()
    backend.set_result.side_effect = StoreError("read only")
    pool = WorkerPool(InMemoryBroker(), backend, 1, handlers={"add": _add})
    task = TaskMessage.create("add", [1, 1])

    record = pool.process_message(CeleryMessage.wrap(task))

    assert record is not None
    assert record.result == 2
    backend.set_result.assert_called_once()


def test_register_shares_constructor_table() -> None:
    handlers: dict[str, Callable[..., object]] = {}
    pool = WorkerPool(InMemoryBroker(), InMemoryResultBackend(), 1, handlers=handlers)

    pool.register("add", _add)

    assert handlers["add"] is _add
    assert pool.registered_tasks() == ["add"]


def test_register_rejects_non_callable() -> None:
    with pytest.raises(TypeError):
        _pool().register("bad", "not callable")  # type: ignore[arg-type]


def test_num_workers_must_be_positive() -> None:
    with pytest.raises(ValueError):
        WorkerPool(InMemoryBroker(), InMemoryResultBackend(), 0)


def test_running_pool_keeps_processing_after_failures(
    wait_until: Callable[..., bool],
) -> None:
    broker = InMemoryBroker()
    backend = InMemoryResultBackend()
    pool = _pool(broker, backend)
    tasks = [
        TaskMessage.create("ghost"),
        TaskMessage.create("boom"),
        TaskMessage.create("add", [1, 2]),
        TaskMessage.create("add", [3, 4]),
    ]

    pool.start_worker()
    try:
        for task in tasks:
            broker.send(CeleryMessage.wrap(task))
        assert wait_until(lambda: len(backend) == len(tasks))
    finally:
        assert pool.stop_worker() is True

    records = [_stored(backend, task.id) for task in tasks]
    assert [record.is_success for record in records if record] == [
        False,
        False,
        True,
        True,
    ]
    assert records[3] is not None and records[3].result == 7


def test_single_executor_survives_handler_calling_sys_exit(
    wait_until: Callable[..., bool],
) -> None:
    broker = InMemoryBroker()
    backend = InMemoryResultBackend()
    pool = _pool(broker, backend, num_workers=1)
    pool.register("quit", _quit)
    quit_task = TaskMessage.create("quit")
    add_task = TaskMessage.create("add", [2, 3])

    pool.start_worker()
    try:
        broker.send(CeleryMessage.wrap(quit_task))
        broker.send(CeleryMessage.wrap(add_task))
        assert wait_until(lambda: len(backend) == 2)
    finally:
        assert pool.stop_worker() is True

    quit_record = _stored(backend, quit_task.id)
    assert quit_record is not None
    assert quit_record.result == {"exc_type": "SystemExit", "exc_message": "bye"}
    add_record = _stored(backend, add_task.id)
    assert add_record is not None and add_record.result == 5


def test_start_worker_twice_does_not_add_executors() -> None:
    pool = _pool(num_workers=3)
    before = worker_thread_count()

    pool.start_worker()
    pool.start_worker()
    try:
        assert pool.is_running
        assert worker_thread_count() - before == 3
    finally:
        pool.stop_worker()

    assert not pool.is_running


def test_stop_worker_without_start_is_noop() -> None:
    assert _pool().stop_worker() is True


def test_stop_worker_waits_for_in_flight_task(wait_until: Callable[..., bool]) -> None:
    broker = InMemoryBroker()
    backend = InMemoryResultBackend()
    started = threading.Event()

    def _slow() -> str:
        started.set()
        time.sleep(0.3)
        return "finished"

    pool = _pool(broker, backend, num_workers=1, shutdown_grace_seconds=5.0)
    pool.register("slow", _slow)
    task = TaskMessage.create("slow")

    pool.start_worker()
    broker.send(CeleryMessage.wrap(task))
    assert started.wait(2.0)

    assert pool.stop_worker() is True
    stored = _stored(backend, task.id)
    assert stored is not None
    assert stored.result == "finished"


def test_stop_worker_gives_up_after_grace_period() -> None:
    broker = InMemoryBroker()
    started = threading.Event()
    release = threading.Event()

    def _stuck() -> None:
        started.set()
        release.wait(5.0)

    pool = _pool(broker, num_workers=1, shutdown_grace_seconds=0.1)
    pool.register("stuck", _stuck)
    pool.start_worker()
    broker.send(CeleryMessage.wrap(TaskMessage.create("stuck")))
    assert started.wait(2.0)

    try:
        start = time.monotonic()
        assert pool.stop_worker() is False
        assert time.monotonic() - start < 1.0
        assert not pool.is_running
    finally:
        release.set()


class _FlakyBroker(InMemoryBroker):
    """Fails the first receive, then behaves normally."""

    def __init__(self) -> None:
        super().__init__()
        self.failures = 0

    def receive(self, timeout: float) -> CeleryMessage | None:
        if self.failures == 0:
            self.failures += 1
            raise TransportError("connection reset")
        return super().receive(timeout)


def test_executor_survives_broker_errors(wait_until: Callable[..., bool]) -> None:
    broker = _FlakyBroker()
    backend = InMemoryResultBackend()
    pool = _pool(broker, backend, num_workers=1, error_backoff_seconds=0.01)
    task = TaskMessage.create("add", [5, 5])

    pool.start_worker()
    try:
        broker.send(CeleryMessage.wrap(task))
        assert wait_until(lambda: backend.get_result(task.id) is not None)
    finally:
        pool.stop_worker()

    assert broker.failures == 1
    stored = _stored(backend, task.id)
    assert stored is not None and stored.result == 10
