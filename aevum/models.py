"""Data model shared by the Aevum services, with JSON-compatible dict forms."""

from __future__ import annotations

import enum
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, TypeAlias

from .errors import SerializationError

DEFAULT_RETENTION_DAYS = 30


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _format_timestamp(value: datetime) -> str:
    value = value.astimezone(timezone.utc)
    if not value.microsecond:
        timespec = "seconds"
    elif value.microsecond % 1000 == 0:
        timespec = "milliseconds"
    else:
        timespec = "microseconds"
    return value.replace(tzinfo=None).isoformat(timespec=timespec) + "Z"


def _parse_timestamp(value: Any, name: str) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError as exc:
            raise SerializationError(f"invalid timestamp for `{name}`: {value!r}") from exc
    else:
        raise SerializationError(f"invalid type for `{name}`: expected a timestamp")
    if parsed.tzinfo is None:
        raise SerializationError(f"timestamp for `{name}` has no UTC offset: {value!r}")
    return parsed.astimezone(timezone.utc)


def _mapping(data: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise SerializationError(f"invalid type: expected {what} object")
    return data


def _require(data: Mapping[str, Any], key: str) -> Any:
    try:
        return data[key]
    except KeyError:
        raise SerializationError(f"missing field `{key}`") from None


def _parse_uuid(value: Any, name: str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    if isinstance(value, str):
        try:
            return uuid.UUID(value)
        except ValueError as exc:
            raise SerializationError(f"invalid UUID for `{name}`: {value!r}") from exc
    raise SerializationError(f"invalid type for `{name}`: expected a UUID string")


def _optional_uuid(value: Any, name: str) -> uuid.UUID | None:
    return None if value is None else _parse_uuid(value, name)


def _parse_str(value: Any, name: str) -> str:
    if not isinstance(value, str):
        raise SerializationError(f"invalid type for `{name}`: expected a string")
    return value


def _optional_str(value: Any, name: str) -> str | None:
    return None if value is None else _parse_str(value, name)


def _parse_uint(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise SerializationError(f"invalid value for `{name}`: expected a non-negative integer")
    return value


@dataclass
class RetentionConfig:
    """How long a stream keeps its data."""

    days: int = DEFAULT_RETENTION_DAYS
    max_records: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"days": self.days, "max_records": self.max_records}

    @classmethod
    def from_dict(cls, data: Any) -> RetentionConfig:
        data = _mapping(data, "retention")
        max_records = data.get("max_records")
        return cls(
            days=_parse_uint(_require(data, "days"), "days"),
            max_records=None if max_records is None else _parse_uint(max_records, "max_records"),
        )


@dataclass
class Stream:
    """A data stream definition with its JSON Schema."""

    id: uuid.UUID
    name: str
    schema: Any
    description: str | None = None
    retention: RetentionConfig = field(default_factory=RetentionConfig)
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "name": self.name,
            "description": self.description,
            "schema": self.schema,
            "retention": self.retention.to_dict(),
            "created_at": _format_timestamp(self.created_at),
            "updated_at": _format_timestamp(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Any) -> Stream:
        data = _mapping(data, "stream")
        return cls(
            id=_parse_uuid(_require(data, "id"), "id"),
            name=_parse_str(_require(data, "name"), "name"),
            description=_optional_str(data.get("description"), "description"),
            schema=_require(data, "schema"),
            retention=RetentionConfig.from_dict(_require(data, "retention")),
            created_at=_parse_timestamp(_require(data, "created_at"), "created_at"),
            updated_at=_parse_timestamp(_require(data, "updated_at"), "updated_at"),
        )


@dataclass
class DataPoint:
    """A single timestamped payload belonging to a stream."""

    stream_id: uuid.UUID
    id: uuid.UUID
    timestamp: datetime
    payload: Any

    def to_dict(self) -> dict[str, Any]:
        return {
            "stream_id": str(self.stream_id),
            "id": str(self.id),
            "timestamp": _format_timestamp(self.timestamp),
            "payload": self.payload,
        }

    @classmethod
    def from_dict(cls, data: Any) -> DataPoint:
        data = _mapping(data, "data point")
        return cls(
            stream_id=_parse_uuid(_require(data, "stream_id"), "stream_id"),
            id=_parse_uuid(_require(data, "id"), "id"),
            timestamp=_parse_timestamp(_require(data, "timestamp"), "timestamp"),
            payload=_require(data, "payload"),
        )


class AggregationFunction(enum.Enum):
    """Aggregation functions supported by pipelines."""

    SUM = "Sum"
    AVERAGE = "Average"
    MIN = "Min"
    MAX = "Max"
    COUNT = "Count"


@dataclass(frozen=True)
class FilterSpec:
    """Keep only data points matching a condition."""

    condition: str


@dataclass(frozen=True)
class TransformSpec:
    """Derive a new field with a transformation expression."""

    transformation: str


@dataclass(frozen=True)
class AggregateSpec:
    """Aggregate a field over fixed time windows."""

    window_seconds: int
    function: AggregationFunction
    field: str


@dataclass(frozen=True)
class AnomalyDetectionSpec:
    """Flag anomalous data points."""

    algorithm: str
    parameters: Any


Operation: TypeAlias = FilterSpec | TransformSpec | AggregateSpec | AnomalyDetectionSpec


def operation_to_dict(operation: Operation) -> dict[str, Any]:
    """Encode an operation as a single-key mapping tagged with its kind."""
    match operation:
        case FilterSpec(condition=condition):
            return {"Filter": {"condition": condition}}
        case TransformSpec(transformation=transformation):
            return {"Transform": {"transformation": transformation}}
        case AggregateSpec(window_seconds=window, function=function, field=name):
            return {
                "Aggregate": {
                    "window_seconds": window,
                    "function": function.value,
                    "field": name,
                }
            }
        case AnomalyDetectionSpec(algorithm=algorithm, parameters=parameters):
            return {"AnomalyDetection": {"algorithm": algorithm, "parameters": parameters}}
    raise SerializationError(f"not an operation: {operation!r}")


def _parse_function(value: Any) -> AggregationFunction:
    try:
        return AggregationFunction(value)
    except ValueError:
        raise SerializationError(f"unknown variant `{value}` for aggregation function") from None


def operation_from_dict(data: Any) -> Operation:
    """Decode an operation from its tagged mapping form."""
    data = _mapping(data, "operation")
    if len(data) != 1:
        raise SerializationError("operation must hold exactly one variant")
    ((tag, body),) = data.items()
    body = _mapping(body, tag)
    match tag:
        case "Filter":
            return FilterSpec(_parse_str(_require(body, "condition"), "condition"))
        case "Transform":
            return TransformSpec(_parse_str(_require(body, "transformation"), "transformation"))
        case "Aggregate":
            return AggregateSpec(
                window_seconds=_parse_uint(_require(body, "window_seconds"), "window_seconds"),
                function=_parse_function(_require(body, "function")),
                field=_parse_str(_require(body, "field"), "field"),
            )
        case "AnomalyDetection":
            return AnomalyDetectionSpec(
                algorithm=_parse_str(_require(body, "algorithm"), "algorithm"),
                parameters=_require(body, "parameters"),
            )
    raise SerializationError(f"unknown variant `{tag}` for operation")


@dataclass
class Pipeline:
    """A sequence of operations applied to a source stream."""

    id: uuid.UUID
    name: str
    source_stream_id: uuid.UUID
    description: str | None = None
    destination_stream_id: uuid.UUID | None = None
    operations: list[Operation] = field(default_factory=list)
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "name": self.name,
            "description": self.description,
            "source_stream_id": str(self.source_stream_id),
            "destination_stream_id": (
                None if self.destination_stream_id is None else str(self.destination_stream_id)
            ),
            "operations": [operation_to_dict(op) for op in self.operations],
            "created_at": _format_timestamp(self.created_at),
            "updated_at": _format_timestamp(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Any) -> Pipeline:
        data = _mapping(data, "pipeline")
        operations = _require(data, "operations")
        if not isinstance(operations, list):
            raise SerializationError("invalid type for `operations`: expected a list")
        return cls(
            id=_parse_uuid(_require(data, "id"), "id"),
            name=_parse_str(_require(data, "name"), "name"),
            description=_optional_str(data.get("description"), "description"),
            source_stream_id=_parse_uuid(_require(data, "source_stream_id"), "source_stream_id"),
            destination_stream_id=_optional_uuid(
                data.get("destination_stream_id"), "destination_stream_id"
            ),
            operations=[operation_from_dict(op) for op in operations],
            created_at=_parse_timestamp(_require(data, "created_at"), "created_at"),
            updated_at=_parse_timestamp(_require(data, "updated_at"), "updated_at"),
        )