"""Request handlers of the query API: streams, data, statistics and health."""

from __future__ import annotations

import logging
import re
import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from http import HTTPStatus
from typing import Any, Protocol

from .errors import NotFoundError, ValidationError
from .models import DataPoint, Stream, _format_timestamp

logger = logging.getLogger(__name__)

SERVICE_VERSION = "0.1.0"

Response = tuple[int, Any]

_RFC3339 = re.compile(
    r"(\d{4}-\d{2}-\d{2})[Tt ](\d{2}:\d{2}:\d{2})(?:\.(\d+))?([Zz]|[+-]\d{2}:\d{2})"
)


class StreamRepository(Protocol):
    """Read access to stream definitions."""

    async def get(self, stream_id: uuid.UUID) -> Stream | None:
        """Return the stream with this id, or None."""

    async def list(self) -> list[Stream]:
        """Return all streams ordered by name."""


@dataclass
class FieldStats:
    """Statistics of one numeric payload field over a time range."""

    min: float
    max: float
    avg: float
    stddev: float
    count: int
    first_timestamp: datetime
    last_timestamp: datetime


class TimeSeriesRepository(Protocol):
    """Read access to stored data points."""

    async def query(
        self,
        stream_id: uuid.UUID,
        start_time: datetime,
        end_time: datetime,
        limit: int | None,
    ) -> list[DataPoint]:
        """Return data points in the range, oldest first."""

    async def query_aggregated(
        self,
        stream_id: uuid.UUID,
        start_time: datetime,
        end_time: datetime,
        interval: str,
        function: str,
        field: str,
    ) -> list[DataPoint]:
        """Return one aggregated data point per time bucket."""

    async def query_latest(self, stream_id: uuid.UUID) -> DataPoint | None:
        """Return the newest data point of the stream, or None."""

    async def get_field_stats(
        self,
        stream_id: uuid.UUID,
        field: str,
        start_time: datetime,
        end_time: datetime,
    ) -> FieldStats:
        """Return statistics of a field over the range."""


@dataclass
class Repositories:
    """The repositories the handlers read from."""

    streams: StreamRepository
    time_series: TimeSeriesRepository


@dataclass
class DataQuery:
    """Query parameters for data retrieval; times are RFC 3339 strings."""

    start: str | None = None
    end: str | None = None
    limit: int | None = None


@dataclass
class AggregationQuery:
    """Query parameters for aggregation."""

    interval: str
    function: str
    field: str
    start: str | None = None
    end: str | None = None


def _parse_rfc3339(text: str) -> datetime:
    match = _RFC3339.fullmatch(text)
    if match is None:
        raise ValueError(f"input is not an RFC 3339 date-time: {text!r}")
    date, clock, fraction, offset = match.groups()
    micros = ((fraction or "") + "000000")[:6]
    if offset in ("Z", "z"):
        offset = "+00:00"
    return datetime.fromisoformat(f"{date}T{clock}.{micros}{offset}").astimezone(timezone.utc)


def parse_time_range(start: str | None, end: str | None) -> tuple[datetime, datetime]:
    """Parse the query's time range; end defaults to now, start to one day before end."""
    if end is None:
        end_time = datetime.now(timezone.utc)
    else:
        try:
            end_time = _parse_rfc3339(end)
        except ValueError as exc:
            raise ValidationError(f"Invalid end time format: {exc}") from exc

    if start is None:
        start_time = end_time - timedelta(days=1)
    else:
        try:
            start_time = _parse_rfc3339(start)
        except ValueError as exc:
            raise ValidationError(f"Invalid start time format: {exc}") from exc

    if start_time > end_time:
        raise ValidationError("Start time must be before end time")
    return start_time, end_time


def extract_fields_from_schema(schema: Any) -> list[str]:
    """Return the top-level property names of a flat JSON Schema."""
    if isinstance(schema, Mapping):
        properties = schema.get("properties")
        if isinstance(properties, Mapping):
            return list(properties)
    return []


def _stream_id(value: uuid.UUID | str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError as exc:
        raise ValidationError(f"Invalid stream id: {value}") from exc


async def _require_stream(repos: Repositories, stream_id: uuid.UUID) -> Stream:
    stream = await repos.streams.get(stream_id)
    if stream is None:
        raise NotFoundError(f"Stream not found: {stream_id}")
    return stream


def _data_response(
    stream_id: uuid.UUID, start: datetime, end: datetime, data: list[DataPoint]
) -> dict[str, Any]:
    return {
        "data": [point.to_dict() for point in data],
        "meta": {
            "stream_id": str(stream_id),
            "start_time": _format_timestamp(start),
            "end_time": _format_timestamp(end),
            "count": len(data),
        },
    }


async def health_check() -> Response:
    """Report that the service is up, with its version."""
    return int(HTTPStatus.OK), {"status": "ok", "version": SERVICE_VERSION}


async def list_streams(repos: Repositories) -> Response:
    """List all streams."""
    logger.info("Listing all streams")
    streams = await repos.streams.list()
    return int(HTTPStatus.OK), {"streams": [stream.to_dict() for stream in streams]}


async def get_stream(repos: Repositories, stream_id: uuid.UUID | str) -> Response:
    """Return one stream, or raise NotFoundError."""
    stream_id = _stream_id(stream_id)
    logger.info("Getting stream: %s", stream_id)
    stream = await _require_stream(repos, stream_id)
    return int(HTTPStatus.OK), {"stream": stream.to_dict()}


async def get_stream_fields(repos: Repositories, stream_id: uuid.UUID | str) -> Response:
    """Return the field names declared in a stream's schema."""
    stream_id = _stream_id(stream_id)
    logger.info("Getting fields for stream: %s", stream_id)
    stream = await _require_stream(repos, stream_id)
    return int(HTTPStatus.OK), extract_fields_from_schema(stream.schema)


async def query_data(
    repos: Repositories, stream_id: uuid.UUID | str, query: DataQuery
) -> Response:
    """Return the stream's data points in the requested time range."""
    stream_id = _stream_id(stream_id)
    logger.info("Querying data for stream: %s", stream_id)
    await _require_stream(repos, stream_id)
    start_time, end_time = parse_time_range(query.start, query.end)
    if query.limit is not None and query.limit < 0:
        raise ValidationError("Limit must not be negative")
    data = await repos.time_series.query(stream_id, start_time, end_time, query.limit)
    return int(HTTPStatus.OK), _data_response(stream_id, start_time, end_time, data)


async def aggregate_data(
    repos: Repositories, stream_id: uuid.UUID | str, query: AggregationQuery
) -> Response:
    """Return the stream's data aggregated into time buckets."""
    stream_id = _stream_id(stream_id)
    logger.info("Aggregating data for stream: %s", stream_id)
    await _require_stream(repos, stream_id)
    start_time, end_time = parse_time_range(query.start, query.end)
    data = await repos.time_series.query_aggregated(
        stream_id, start_time, end_time, query.interval, query.function, query.field
    )
    return int(HTTPStatus.OK), _data_response(stream_id, start_time, end_time, data)


async def get_latest(repos: Repositories, stream_id: uuid.UUID | str) -> Response:
    """Return the stream's newest data point, or None if it has none."""
    stream_id = _stream_id(stream_id)
    logger.info("Getting latest data point for stream: %s", stream_id)
    await _require_stream(repos, stream_id)
    latest = await repos.time_series.query_latest(stream_id)
    return int(HTTPStatus.OK), None if latest is None else latest.to_dict()


async def get_field_stats(
    repos: Repositories, stream_id: uuid.UUID | str, field: str, query: DataQuery
) -> Response:
    """Return statistics of one payload field over the requested time range."""
    stream_id = _stream_id(stream_id)
    logger.info("Getting field stats for stream: %s field: %s", stream_id, field)
    await _require_stream(repos, stream_id)
    start_time, end_time = parse_time_range(query.start, query.end)
    stats = await repos.time_series.get_field_stats(stream_id, field, start_time, end_time)
    return int(HTTPStatus.OK), {
        "stream_id": str(stream_id),
        "field": field,
        "min": stats.min,
        "max": stats.max,
        "avg": stats.avg,
        "stddev": stats.stddev,
        "count": stats.count,
        "first_timestamp": _format_timestamp(stats.first_timestamp),
        "last_timestamp": _format_timestamp(stats.last_timestamp),
    }