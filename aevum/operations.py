"""Stream operations applied by processing pipelines."""

from __future__ import annotations

import logging
import math
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any

from .models import (
    AggregateSpec,
    AggregationFunction,
    AnomalyDetectionSpec,
    DataPoint,
    FilterSpec,
    Operation,
    TransformSpec,
)
from .errors import StreamProcessingError
from .utils import current_timestamp, get_nested_value

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_F64_MAX = 1.7976931348623157e308
_F64_EPSILON = 2.220446049250313e-16

Clock = Callable[[], datetime]


def _as_number(value: Any) -> float | None:
    """Return a JSON number as a float, or None for anything else."""
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    return float(value)


def _parse_float(text: str) -> float | None:
    if "_" in text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def _json_number(value: float) -> float | None:
    """JSON has no non-finite numbers; such results become null."""
    return value if math.isfinite(value) else None


def _divide(a: float, b: float) -> float:
    if b != 0:
        return a / b
    if a == 0 or math.isnan(a):
        return math.nan
    return math.copysign(math.inf, a) * math.copysign(1.0, b)


_ARITHMETIC: dict[str, Callable[[float, float], float]] = {
    "*": lambda a, b: a * b,
    "/": _divide,
    "+": lambda a, b: a + b,
    "-": lambda a, b: a - b,
}


def _epoch_seconds(moment: datetime) -> int:
    return (moment - _EPOCH) // timedelta(seconds=1)


class StreamOperation(ABC):
    """An operation that transforms, filters or combines data points."""

    @abstractmethod
    async def process_single(self, data_point: DataPoint) -> DataPoint | None:
        """Process one data point; None means it is dropped."""

    async def process_batch(self, data_points: Iterable[DataPoint]) -> list[DataPoint]:
        """Process data points one by one, keeping those that survive."""
        results = []
        for data_point in data_points:
            processed = await self.process_single(data_point)
            if processed is not None:
                results.append(processed)
        return results


class FilterOperation(StreamOperation):
    """Keep data points matching a condition such as ``temperature > 25``."""

    def __init__(self, condition: str) -> None:
        self.condition = condition

    def evaluate(self, data: Any) -> bool:
        """Evaluate the condition against a payload."""
        parts = self.condition.split()
        if len(parts) != 3:
            logger.warning("Invalid filter condition format: %s", self.condition)
            return True
        field, operator, value_text = parts

        field_value = get_nested_value(data, field)
        if field_value is None:
            logger.warning("Field not found in data: %s", field)
            return False

        threshold = _parse_float(value_text)
        if threshold is None:
            logger.warning("Invalid threshold value: %s", value_text)
            return False

        number = _as_number(field_value)
        if number is None:
            logger.warning("Field is not a number: %s", field)
            return False

        match operator:
            case ">":
                return number > threshold
            case ">=":
                return number >= threshold
            case "<":
                return number < threshold
            case "<=":
                return number <= threshold
            case "==" | "=":
                return abs(number - threshold) < _F64_EPSILON
            case "!=":
                return abs(number - threshold) >= _F64_EPSILON
        logger.warning("Unsupported operator: %s", operator)
        return False

    async def process_single(self, data_point: DataPoint) -> DataPoint | None:
        return data_point if self.evaluate(data_point.payload) else None


class TransformOperation(StreamOperation):
    """Derive a field, e.g. ``fahrenheit: temperature * 1.8 + 32``."""

    def __init__(self, transformation: str) -> None:
        self.transformation = transformation

    def transform(self, data: Any) -> Any:
        """Return the payload with the derived field added, or unchanged if it cannot be."""
        parts = self.transformation.split(":")
        if len(parts) != 2:
            logger.warning("Invalid transformation format: %s", self.transformation)
            return data
        new_field = parts[0].strip()
        expression = parts[1].strip()

        tokens = expression.split()
        if len(tokens) not in (3, 5):
            logger.warning("Invalid expression format: %s", expression)
            return data

        field = tokens[0]
        result = _as_number(get_nested_value(data, field))
        if result is None:
            logger.warning("Field not found or not a number: %s", field)
            return data

        for operator, operand_text in zip(tokens[1::2], tokens[2::2]):
            operand = _parse_float(operand_text)
            if operand is None:
                logger.warning("Invalid value in expression: %s", operand_text)
                return data
            apply = _ARITHMETIC.get(operator)
            if apply is None:
                logger.warning("Unsupported operator: %s", operator)
                return data
            result = apply(result, operand)

        if isinstance(data, Mapping):
            return {**data, new_field: _json_number(result)}
        return data

    async def process_single(self, data_point: DataPoint) -> DataPoint | None:
        return replace(data_point, payload=self.transform(data_point.payload))


class AggregateOperation(StreamOperation):
    """Aggregate a field over fixed, epoch-aligned time windows."""

    def __init__(
        self,
        window_seconds: int,
        function: AggregationFunction,
        field: str,
        stream_id: uuid.UUID,
        *,
        clock: Clock = current_timestamp,
    ) -> None:
        self.window_seconds = window_seconds
        self.function = function
        self.field = field
        self.stream_id = stream_id
        self.windows: dict[int, list[DataPoint]] = {}
        self._clock = clock
        self.last_window_end = clock()

    def aggregate_values(self, values: Iterable[float]) -> float:
        """Apply the aggregation function; an empty input gives 0.0."""
        values = list(values)
        if not values:
            return 0.0
        match self.function:
            case AggregationFunction.SUM:
                return math.fsum(values) if all(map(math.isfinite, values)) else sum(values)
            case AggregationFunction.AVERAGE:
                return sum(values) / len(values)
            case AggregationFunction.MIN:
                lowest = _F64_MAX
                for value in values:
                    if value < lowest:
                        lowest = value
                return lowest
            case AggregationFunction.MAX:
                highest = -_F64_MAX
                for value in values:
                    if value > highest:
                        highest = value
                return highest
            case AggregationFunction.COUNT:
                return float(len(values))
        raise StreamProcessingError(f"unsupported aggregation function: {self.function!r}")

    def _extract(self, data_point: DataPoint) -> float | None:
        return _as_number(get_nested_value(data_point.payload, self.field))

    def window_key(self, timestamp: datetime) -> int:
        """Return the epoch second at which the timestamp's window starts."""
        if self.window_seconds == 0:
            raise StreamProcessingError("window size must be greater than 0 seconds")
        seconds = _epoch_seconds(timestamp)
        remainder = abs(seconds) % self.window_seconds
        return seconds - (remainder if seconds >= 0 else -remainder)

    def process_windows(self, current_time: datetime) -> list[DataPoint]:
        """Emit an aggregate for every window that has closed by ``current_time``."""
        now = _epoch_seconds(current_time)
        ready = sorted(
            key for key in self.windows if key + self.window_seconds <= now
        )
        results = []
        for window_start in ready:
            data_points = self.windows.pop(window_start)
            if not data_points:
                continue
            values = [v for v in map(self._extract, data_points) if v is not None]
            if not values:
                continue
            aggregated = self.aggregate_values(values)
            try:
                window_timestamp = _EPOCH + timedelta(seconds=window_start)
            except OverflowError:
                window_timestamp = self._clock()
            payload = {
                self.field: _json_number(aggregated),
                "window_start": window_start,
                "window_end": window_start + self.window_seconds,
                "window_size_seconds": self.window_seconds,
                "aggregation": self.function.value,
                "count": len(data_points),
            }
            results.append(
                DataPoint(
                    stream_id=self.stream_id,
                    id=uuid.uuid4(),
                    timestamp=window_timestamp,
                    payload=payload,
                )
            )
        self.last_window_end = current_time
        return results

    async def process_single(self, data_point: DataPoint) -> DataPoint | None:
        # Aggregation only works on batches.
        return None

    async def process_batch(self, data_points: Iterable[DataPoint]) -> list[DataPoint]:
        data_points = list(data_points)
        if not data_points:
            return []
        for data_point in data_points:
            self.windows.setdefault(self.window_key(data_point.timestamp), []).append(data_point)
        return self.process_windows(self._clock())


class AnomalyDetectionOperation(StreamOperation):
    """Flag data points whose ``value`` exceeds the ``threshold`` parameter."""

    def __init__(
        self, algorithm: str, parameters: Any, *, clock: Clock = current_timestamp
    ) -> None:
        self.algorithm = algorithm
        self.parameters = parameters
        self._clock = clock

    def is_anomaly(self, data_point: DataPoint) -> bool:
        """Return True if the data point is considered anomalous."""
        if not isinstance(self.parameters, Mapping):
            return False
        threshold = _as_number(self.parameters.get("threshold"))
        if threshold is None:
            return False
        value = _as_number(get_nested_value(data_point.payload, "value"))
        return value is not None and value > threshold

    async def process_single(self, data_point: DataPoint) -> DataPoint | None:
        if not self.is_anomaly(data_point):
            return data_point
        payload = data_point.payload
        if isinstance(payload, Mapping):
            payload = {
                **payload,
                "is_anomaly": True,
                "anomaly_detection": {
                    "algorithm": self.algorithm,
                    "detected_at": self._clock().astimezone(timezone.utc).isoformat(),
                },
            }
        return replace(data_point, payload=payload)


def create_operation(operation: Operation, stream_id: uuid.UUID) -> StreamOperation:
    """Build the operation described by a pipeline specification."""
    match operation:
        case FilterSpec(condition=condition):
            return FilterOperation(condition)
        case TransformSpec(transformation=transformation):
            return TransformOperation(transformation)
        case AggregateSpec(window_seconds=window, function=function, field=field):
            return AggregateOperation(window, function, field, stream_id)
        case AnomalyDetectionSpec(algorithm=algorithm, parameters=parameters):
            return AnomalyDetectionOperation(algorithm, parameters)
    raise TypeError(f"not an operation specification: {operation!r}")