"""Thread pool that consumes tasks from the broker and stores their results."""

from __future__ import annotations

import threading
import time
import traceback
from collections.abc import Callable
from typing import Any, Final

from celeryport.config.logging_config import bind_context, get_logger
from celeryport.domain.exceptions import DecodeError, StoreError, TransportError
from celeryport.domain.messages import (
    CeleryMessage,
    ResultMessage,
    ResultStatus,
    TaskMessage,
)
from celeryport.observability.metrics import (
    TASK_DURATION_SECONDS,
    TASKS_PROCESSED_TOTAL,
)
from celeryport.ports.broker import BrokerPort
from celeryport.ports.result_backend import ResultBackendPort

logger = get_logger(__name__)

TaskHandler = Callable[..., Any]

UNREGISTERED_EXC_TYPE: Final[str] = "NotRegistered"
_DEFAULT_RECEIVE_TIMEOUT_SECONDS: Final[float] = 1.0
_DEFAULT_SHUTDOWN_GRACE_SECONDS: Final[float] = 10.0
_DEFAULT_ERROR_BACKOFF_SECONDS: Final[float] = 0.5


class WorkerPool:
    """Fixed-size set of executor threads sharing one handler table.

    Each executor receives one envelope at a time, runs the handler registered
    under the task name and writes exactly one result record for it. Handler
    errors and unknown task names become FAILURE records; they never stop an
    executor.
    """

    def __init__(
        self,
        broker: BrokerPort,
        backend: ResultBackendPort,
        num_workers: int,
        *,
        handlers: dict[str, TaskHandler] | None = None,
        receive_timeout: float = _DEFAULT_RECEIVE_TIMEOUT_SECONDS,
        shutdown_grace_seconds: float = _DEFAULT_SHUTDOWN_GRACE_SECONDS,
        error_backoff_seconds: float = _DEFAULT_ERROR_BACKOFF_SECONDS,
    ) -> None:
        if num_workers <= 0:
            msg = "num_workers must be positive"
            raise ValueError(msg)
        if receive_timeout <= 0:
            msg = "receive_timeout must be positive"
            raise ValueError(msg)

        self._broker = broker
        self._backend = backend
        self._num_workers = num_workers
        self._handlers: dict[str, TaskHandler] = handlers if handlers is not None else {}
        self._receive_timeout = receive_timeout
        self._shutdown_grace_seconds = max(0.0, shutdown_grace_seconds)
        self._error_backoff_seconds = max(0.0, error_backoff_seconds)
        self._threads: list[threading.Thread] = []
        self._stop_event = threading.Event()
        self._lifecycle_lock = threading.Lock()

    @property
    def num_workers(self) -> int:
        return self._num_workers

    @property
    def is_running(self) -> bool:
        return bool(self._threads)

    def register(self, name: str, handler: TaskHandler) -> None:
        """Install ``handler`` under ``name``, replacing any previous handler."""

        if not name:
            raise ValueError("task name must not be empty")
        if not callable(handler):
            raise TypeError(f"handler for {name!r} is not callable")
        if self.is_running:
            logger.warning("task_registered_while_running", task=name)

        self._handlers[name] = handler
        logger.debug("task_registered", task=name)

    def registered_tasks(self) -> list[str]:
        return sorted(self._handlers)

    def start_worker(self) -> None:
        """Launch the executor threads. Calling it on a running pool is a no-op."""

        with self._lifecycle_lock:
            if self._threads:
                logger.warning("worker_pool_already_running", num_workers=self._num_workers)
                return

            # Executors left over from a grace-expired stop keep their old event.
            self._stop_event = threading.Event()
            for index in range(self._num_workers):
                thread = threading.Thread(
                    target=self._run_executor,
                    args=(index, self._stop_event),
                    name=f"celeryport-worker-{index}",
                    daemon=True,
                )
                thread.start()
                self._threads.append(thread)

        logger.info(
            "worker_pool_started",
            num_workers=self._num_workers,
            tasks=self.registered_tasks(),
        )

    def stop_worker(self) -> bool:
        """Stop accepting messages and wait for in-flight tasks.

        Waits at most the shutdown grace period in total. Handlers still running
        after that are left to finish on their own.

        Returns:
            True if every executor exited within the grace period
        """

        with self._lifecycle_lock:
            if not self._threads:
                return True

            self._stop_event.set()
            deadline = time.monotonic() + self._shutdown_grace_seconds
            for thread in self._threads:
                thread.join(timeout=max(0.0, deadline - time.monotonic()))

            still_running = [thread.name for thread in self._threads if thread.is_alive()]
            self._threads = []

        if still_running:
            logger.warning(
                "worker_stop_grace_expired",
                executors=still_running,
                grace_seconds=self._shutdown_grace_seconds,
            )
            return False

        logger.info("worker_pool_stopped", num_workers=self._num_workers)
        return True

    def process_message(self, message: CeleryMessage) -> ResultMessage | None:
        """Decode, execute and store the result for one envelope.

        Returns:
            The stored record, or None when the envelope could not be decoded
        """

        try:
            task = message.task_message()
        except DecodeError:
            logger.exception(
                "message_decode_failed",
                delivery_tag=message.properties.delivery_tag,
            )
            return None

        record = self.execute(task)
        try:
            self._backend.set_result(task.id, record.to_bytes())
        except StoreError:
            logger.exception("result_store_failed", task_id=task.id, task=task.task)
        return record

    def execute(self, task: TaskMessage) -> ResultMessage:
        """Run the handler for ``task`` and build its result record."""

        handler = self._handlers.get(task.task)
        if handler is None:
            logger.warning("task_unregistered", task_id=task.id, task=task.task)
            TASKS_PROCESSED_TOTAL.labels(
                task=task.task, status=ResultStatus.FAILURE.value
            ).inc()
            return ResultMessage.failure(
                task.id,
                exc_type=UNREGISTERED_EXC_TYPE,
                exc_message=f"unregistered task: {task.task}",
            )

        logger.info("task_received", task_id=task.id, task=task.task)
        start_time = time.perf_counter()
        try:
            value = handler(*task.args, **task.kwargs)
            record = ResultMessage.success(task.id, value)
        # SystemExit and KeyboardInterrupt raised by a handler are task failures.
        except BaseException as exc:  # noqa: BLE001
            duration = time.perf_counter() - start_time
            TASK_DURATION_SECONDS.labels(task=task.task).observe(duration)
            TASKS_PROCESSED_TOTAL.labels(
                task=task.task, status=ResultStatus.FAILURE.value
            ).inc()
            logger.exception(
                "task_failed",
                task_id=task.id,
                task=task.task,
                duration_seconds=duration,
            )
            return ResultMessage.failure(
                task.id,
                exc_type=type(exc).__name__,
                exc_message=str(exc),
                traceback=traceback.format_exc(),
            )

        duration = time.perf_counter() - start_time
        TASK_DURATION_SECONDS.labels(task=task.task).observe(duration)
        TASKS_PROCESSED_TOTAL.labels(
            task=task.task, status=ResultStatus.SUCCESS.value
        ).inc()
        logger.info(
            "task_succeeded",
            task_id=task.id,
            task=task.task,
            duration_seconds=duration,
        )
        return record

    # Internal helpers -------------------------------------------------

    def _run_executor(self, index: int, stop_event: threading.Event) -> None:
        bind_context(worker_index=index)
        logger.debug("executor_started")

        while not stop_event.is_set():
            try:
                message = self._broker.receive(self._receive_timeout)
                # A message already taken off the broker is processed even if
                # a stop was requested meanwhile.
                if message is not None:
                    self.process_message(message)
            except TransportError:
                logger.exception("broker_receive_failed")
                stop_event.wait(self._error_backoff_seconds)
            except DecodeError:
                logger.exception("message_decode_failed")
            except Exception:  # noqa: BLE001
                logger.exception("executor_iteration_failed")
                stop_event.wait(self._error_backoff_seconds)

        logger.debug("executor_stopped")


__all__ = ["TaskHandler", "UNREGISTERED_EXC_TYPE", "WorkerPool"]
