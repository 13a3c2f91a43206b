"""Entry point for a worker process serving a set of task handlers."""

from __future__ import annotations

import argparse
import importlib
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

from pydantic import ValidationError

sys.path.insert(0, str(Path(__file__).parent.parent))

from scripts import worker_runtime
from celeryport.client import create_client
from celeryport.config.logging_config import get_logger
from celeryport.config.settings import Settings, get_settings
from celeryport.observability.metrics import ensure_metrics_exporter

logger = get_logger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a celeryport worker pool")
    parser.add_argument(
        "--tasks",
        required=True,
        help="Handler table to serve, as module.path:attribute (a dict of name -> callable)",
    )
    parser.add_argument(
        "--num-workers",
        type=int,
        default=None,
        help="Override the configured number of executor threads",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit logs in JSON format",
    )
    parser.add_argument(
        "--metrics",
        action="store_true",
        help="Expose Prometheus metrics on the configured port",
    )
    return parser.parse_args(argv)


def load_handlers(target: str) -> dict[str, Callable[..., Any]]:
    """Import ``module:attribute`` and return it as a handler table.

    Raises:
        ValueError: If ``target`` is malformed or does not name a handler table
    """
    module_name, sep, attribute = target.partition(":")
    if not sep or not module_name or not attribute:
        raise ValueError(f"Expected module:attribute, got {target!r}")

    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise ValueError(f"Cannot import {module_name}: {exc}") from exc

    handlers = getattr(module, attribute, None)
    if not isinstance(handlers, dict):
        raise ValueError(f"{target} is not a dict of task handlers")

    for name, handler in handlers.items():
        if not isinstance(name, str) or not callable(handler):
            raise ValueError(f"{target} contains an invalid entry for {name!r}")
    return handlers


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    settings = get_settings()
    worker_runtime.initialize_logging(settings, json_logs=args.json_logs)

    if args.num_workers is not None:
        try:
            settings = Settings.model_validate(
                {**settings.model_dump(), "num_workers": args.num_workers}
            )
        except ValidationError as exc:
            logger.error(
                "worker_settings_invalid", num_workers=args.num_workers, error=str(exc)
            )
            return 1

    try:
        handlers = load_handlers(args.tasks)
    except ValueError as exc:
        logger.error("task_handlers_unavailable", tasks=args.tasks, error=str(exc))
        return 1

    if args.metrics:
        ensure_metrics_exporter(settings.metrics_port)

    controller = worker_runtime.create_shutdown_controller()
    worker_runtime.install_signal_handlers(controller)

    client = create_client(settings)
    for name, handler in handlers.items():
        client.register(name, handler)

    client.start_worker()
    try:
        worker_runtime.wait_for_shutdown(controller)
    finally:
        client.stop_worker()

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
