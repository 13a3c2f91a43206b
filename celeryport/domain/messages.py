"""Wire models for tasks, transport envelopes and result records.

The layouts follow the Celery message protocol (version 1 task body carried
base64-encoded inside a JSON envelope) and the Celery result meta record, so
other Celery clients and workers sharing the broker and result store can read
what this library writes and vice versa.
"""

from __future__ import annotations

import base64
import binascii
import json
import math
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Final
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from celeryport.domain.exceptions import DecodeError, EncodeError

CONTENT_TYPE_JSON: Final[str] = "application/json"
CONTENT_ENCODING_UTF8: Final[str] = "utf-8"
BODY_ENCODING_BASE64: Final[str] = "base64"
DEFAULT_QUEUE: Final[str] = "celery"
PERSISTENT_DELIVERY_MODE: Final[int] = 2

_SCALAR_TYPES: Final[tuple[type, ...]] = (str, int, float, bool, type(None))


class ResultStatus(StrEnum):
    """Celery task states as stored in result records."""

    PENDING = "PENDING"
    STARTED = "STARTED"
    RETRY = "RETRY"
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"
    REVOKED = "REVOKED"


UNREADY_STATES: Final[frozenset[str]] = frozenset(
    {ResultStatus.PENDING, ResultStatus.STARTED, ResultStatus.RETRY}
)


def validate_argument(value: Any, path: str = "args") -> None:
    """Check that ``value`` belongs to the supported, JSON-exact type set.

    Supported: None, bool, int, finite float, str, lists of supported values
    and dicts with str keys and supported values. Subclasses (enums, tuples,
    named tuples) are rejected because they would not decode to the same type.

    Raises:
        EncodeError: If the value or anything nested in it is unsupported
    """
    value_type = type(value)
    if value_type in _SCALAR_TYPES:
        if value_type is float and not math.isfinite(value):
            raise EncodeError(f"{path}: non-finite float {value!r} is not supported")
        return

    if value_type is list:
        for index, item in enumerate(value):
            validate_argument(item, f"{path}[{index}]")
        return

    if value_type is dict:
        for key, item in value.items():
            if type(key) is not str:
                raise EncodeError(
                    f"{path}: dict keys must be str, got {type(key).__name__}"
                )
            validate_argument(item, f"{path}[{key!r}]")
        return

    raise EncodeError(f"{path}: unsupported type {value_type.__name__}")


def _dumps(payload: Any) -> str:
    try:
        return json.dumps(payload, allow_nan=False, ensure_ascii=False)
    except (TypeError, ValueError) as exc:
        raise EncodeError(str(exc)) from exc


class TaskMessage(BaseModel):
    """Celery protocol v1 task body: identity, task name and arguments."""

    model_config = ConfigDict(frozen=True)

    id: str
    task: str
    args: list[Any] = Field(default_factory=list)
    kwargs: dict[str, Any] = Field(default_factory=dict)
    retries: int = 0
    eta: str | None = None
    expires: str | None = None

    @classmethod
    def create(
        cls,
        task_name: str,
        args: list[Any] | tuple[Any, ...] = (),
        kwargs: dict[str, Any] | None = None,
    ) -> TaskMessage:
        """Build a task with a fresh identity after validating its arguments.

        Raises:
            EncodeError: If any argument is outside the supported type set
        """
        if not task_name:
            raise EncodeError("task name must not be empty")

        arg_list = list(args)
        kwarg_map = dict(kwargs or {})
        validate_argument(arg_list, "args")
        validate_argument(kwarg_map, "kwargs")
        return cls(id=str(uuid4()), task=task_name, args=arg_list, kwargs=kwarg_map)

    def encode(self) -> str:
        """Return the base64 text of the JSON body."""
        raw = _dumps(self.model_dump()).encode(CONTENT_ENCODING_UTF8)
        return base64.b64encode(raw).decode("ascii")

    @classmethod
    def decode(cls, body: str) -> TaskMessage:
        """Parse a base64 JSON body produced by ``encode`` or another client.

        Raises:
            DecodeError: If the body is not base64, not JSON or not a task
        """
        try:
            raw = base64.b64decode(body, validate=True)
            return cls.model_validate_json(raw)
        except (binascii.Error, ValueError) as exc:
            raise DecodeError(f"Malformed task body: {exc}") from exc


class DeliveryInfo(BaseModel):
    priority: int = 0
    routing_key: str = DEFAULT_QUEUE
    exchange: str = DEFAULT_QUEUE


class MessageProperties(BaseModel):
    body_encoding: str = BODY_ENCODING_BASE64
    correlation_id: str
    reply_to: str = Field(default_factory=lambda: str(uuid4()))
    delivery_info: DeliveryInfo = Field(default_factory=DeliveryInfo)
    delivery_mode: int = PERSISTENT_DELIVERY_MODE
    delivery_tag: str = Field(default_factory=lambda: str(uuid4()))


class CeleryMessage(BaseModel):
    """Transport envelope carrying an encoded task body."""

    model_config = ConfigDict(populate_by_name=True)

    body: str
    headers: dict[str, Any] = Field(default_factory=dict)
    content_type: str = Field(default=CONTENT_TYPE_JSON, alias="content-type")
    properties: MessageProperties
    content_encoding: str = Field(
        default=CONTENT_ENCODING_UTF8, alias="content-encoding"
    )

    @classmethod
    def wrap(cls, task: TaskMessage, queue_name: str = DEFAULT_QUEUE) -> CeleryMessage:
        """Encode ``task`` and wrap it for delivery on ``queue_name``."""
        return cls(
            body=task.encode(),
            properties=MessageProperties(
                correlation_id=task.id,
                delivery_info=DeliveryInfo(routing_key=queue_name, exchange=queue_name),
            ),
        )

    def task_message(self) -> TaskMessage:
        """Decode the wrapped task body.

        Raises:
            DecodeError: If the content type, body encoding or body is unsupported
        """
        if self.content_type != CONTENT_TYPE_JSON:
            raise DecodeError(f"Unsupported content type: {self.content_type}")
        if self.properties.body_encoding != BODY_ENCODING_BASE64:
            raise DecodeError(
                f"Unsupported body encoding: {self.properties.body_encoding}"
            )
        return TaskMessage.decode(self.body)

    def to_bytes(self) -> bytes:
        return _dumps(self.model_dump(by_alias=True)).encode(CONTENT_ENCODING_UTF8)

    @classmethod
    def from_bytes(cls, raw: bytes | str) -> CeleryMessage:
        """Parse an envelope read from a transport.

        Raises:
            DecodeError: If ``raw`` is not a valid envelope
        """
        try:
            return cls.model_validate_json(raw)
        except ValidationError as exc:
            raise DecodeError(f"Malformed message envelope: {exc}") from exc


class ResultMessage(BaseModel):
    """Celery result meta record stored under ``celery-task-meta-<id>``."""

    task_id: str
    status: str
    result: Any = None
    traceback: str | None = None
    children: list[Any] = Field(default_factory=list)
    date_done: str | None = None

    @classmethod
    def success(cls, task_id: str, result: Any) -> ResultMessage:
        """Build a SUCCESS record.

        Raises:
            EncodeError: If ``result`` is outside the supported type set
        """
        validate_argument(result, "result")
        return cls(
            task_id=task_id,
            status=ResultStatus.SUCCESS.value,
            result=result,
            date_done=_utc_now_iso(),
        )

    @classmethod
    def failure(
        cls,
        task_id: str,
        *,
        exc_type: str,
        exc_message: str,
        traceback: str | None = None,
    ) -> ResultMessage:
        return cls(
            task_id=task_id,
            status=ResultStatus.FAILURE.value,
            result={"exc_type": exc_type, "exc_message": exc_message},
            traceback=traceback,
            date_done=_utc_now_iso(),
        )

    @property
    def is_success(self) -> bool:
        return self.status == ResultStatus.SUCCESS.value

    @property
    def is_ready(self) -> bool:
        """True for terminal records; foreign in-progress states are not ready."""
        return self.status not in UNREADY_STATES

    def to_bytes(self) -> bytes:
        return _dumps(self.model_dump()).encode(CONTENT_ENCODING_UTF8)

    @classmethod
    def from_bytes(cls, raw: bytes | str) -> ResultMessage:
        """Parse a stored record.

        Raises:
            DecodeError: If ``raw`` is not a result record
        """
        try:
            return cls.model_validate_json(raw)
        except ValidationError as exc:
            raise DecodeError(f"Malformed result record: {exc}") from exc


def _utc_now_iso() -> str:
    return datetime.now(tz=UTC).isoformat()


__all__ = [
    "CONTENT_TYPE_JSON",
    "DEFAULT_QUEUE",
    "UNREADY_STATES",
    "CeleryMessage",
    "DeliveryInfo",
    "MessageProperties",
    "ResultMessage",
    "ResultStatus",
    "TaskMessage",
    "validate_argument",
]
