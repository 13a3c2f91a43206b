"""Producer-facing client: dispatches tasks and owns an in-process worker pool."""

from __future__ import annotations

from typing import Any

from celeryport.adapters.factory import create_backend, create_broker
from celeryport.async_result import (
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_POLL_MAX_INTERVAL_SECONDS,
    AsyncResult,
)
from celeryport.config.logging_config import get_logger
from celeryport.config.settings import Settings, get_settings
from celeryport.domain.exceptions import TransportError
from celeryport.domain.messages import DEFAULT_QUEUE, CeleryMessage, TaskMessage
from celeryport.observability.metrics import TASKS_SENT_TOTAL
from celeryport.ports.broker import BrokerPort
from celeryport.ports.result_backend import ResultBackendPort
from celeryport.workers.pool import TaskHandler, WorkerPool

logger = get_logger(__name__)


class CeleryClient:
    """Sends tasks to the broker and hands back result handles.

    The client also owns a worker pool bound to the same broker and result
    store, so one process can both produce and consume a task set.
    """

    def __init__(
        self,
        broker: BrokerPort,
        backend: ResultBackendPort,
        num_workers: int = 1,
        *,
        queue_name: str = DEFAULT_QUEUE,
        handlers: dict[str, TaskHandler] | None = None,
        receive_timeout: float = 1.0,
        shutdown_grace_seconds: float = 10.0,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
        poll_max_interval: float = DEFAULT_POLL_MAX_INTERVAL_SECONDS,
    ) -> None:
        self.broker = broker
        self.backend = backend
        self.queue_name = queue_name
        self.poll_interval = poll_interval
        self.poll_max_interval = poll_max_interval
        self.worker = WorkerPool(
            broker,
            backend,
            num_workers,
            handlers=handlers,
            receive_timeout=receive_timeout,
            shutdown_grace_seconds=shutdown_grace_seconds,
        )

    def register(self, name: str, handler: TaskHandler) -> None:
        """Register a task handler; do this before ``start_worker``."""
        self.worker.register(name, handler)

    def start_worker(self) -> None:
        self.worker.start_worker()

    def stop_worker(self) -> bool:
        return self.worker.stop_worker()

    def delay(self, task_name: str, /, *args: Any, **kwargs: Any) -> AsyncResult:
        """Send ``task_name`` with the given arguments for asynchronous execution.

        Returns:
            Handle bound to the new task id

        Raises:
            EncodeError: If an argument cannot be serialized; nothing is sent
            TransportError: If the broker send failed; no handle is returned
        """
        task = TaskMessage.create(task_name, args, kwargs)
        message = CeleryMessage.wrap(task, self.queue_name)

        try:
            self.broker.send(message)
        except TransportError:
            logger.error("task_send_failed", task_id=task.id, task=task_name)
            raise
        except Exception as exc:  # noqa: BLE001
            logger.exception("task_send_failed", task_id=task.id, task=task_name)
            raise TransportError(f"Failed to send task {task_name}") from exc

        TASKS_SENT_TOTAL.labels(task=task_name).inc()
        logger.info("task_sent", task_id=task.id, task=task_name)
        return self._handle(task.id)

    def async_result(self, task_id: str) -> AsyncResult:
        """Return a handle for a task id obtained elsewhere."""
        return self._handle(task_id)

    def _handle(self, task_id: str) -> AsyncResult:
        return AsyncResult(
            task_id,
            self.backend,
            poll_interval=self.poll_interval,
            poll_max_interval=self.poll_max_interval,
        )


def create_client(settings: Settings | None = None) -> CeleryClient:
    """Build a client with adapters chosen from settings."""

    settings = settings or get_settings()
    return CeleryClient(
        create_broker(settings),
        create_backend(settings),
        settings.num_workers,
        queue_name=settings.queue_name,
        receive_timeout=settings.receive_timeout_seconds,
        shutdown_grace_seconds=settings.shutdown_grace_seconds,
        poll_interval=settings.result_poll_interval_seconds,
        poll_max_interval=settings.result_poll_max_interval_seconds,
    )


__all__ = ["CeleryClient", "create_client"]
