"""Request handlers of the ingestion service: data ingestion, streams and health."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from http import HTTPStatus
from typing import Any, Protocol

from .api_handlers import SERVICE_VERSION, _parse_rfc3339, _stream_id
from .errors import NotFoundError, ValidationError
from .models import DataPoint, RetentionConfig, Stream
from .utils import current_timestamp, generate_id
from .validation import validate_stream

logger = logging.getLogger(__name__)

Response = tuple[int, Any]


class Publisher(Protocol):
    """Where ingested data points and stream metadata are sent."""

    async def send_data_point(self, data_point: DataPoint) -> None:
        """Publish one data point."""

    async def send_data_points(self, data_points: Sequence[DataPoint]) -> None:
        """Publish data points in order, stopping at the first failure."""

    async def send_stream_metadata(self, stream_id: uuid.UUID, metadata: Stream) -> None:
        """Publish a stream definition keyed by its id."""


@dataclass
class IngestRequest:
    """One payload to ingest, with an optional RFC 3339 timestamp."""

    data: Any
    timestamp: str | None = None


@dataclass
class BatchIngestRequest:
    """Several payloads sharing one optional RFC 3339 timestamp."""

    data: list[Any]
    timestamp: str | None = None


@dataclass
class RetentionRequest:
    """Retention settings given when creating a stream."""

    days: int
    max_records: int | None = None


@dataclass
class CreateStreamRequest:
    """Definition of a new stream."""

    name: str
    schema: Any
    description: str | None = None
    retention: RetentionRequest | None = None


def parse_timestamp(value: str | None) -> datetime:
    """Parse an RFC 3339 timestamp into UTC; None means the current time."""
    if value is None:
        return current_timestamp()
    try:
        return _parse_rfc3339(value)
    except ValueError as exc:
        raise ValidationError(f"Invalid timestamp format: {exc}") from exc


async def health_check() -> Response:
    """Report that the service is up, with its version."""
    return int(HTTPStatus.OK), {"status": "ok", "version": SERVICE_VERSION}


async def ingest_data(
    producer: Publisher, stream_id: uuid.UUID | str, request: IngestRequest
) -> Response:
    """Publish a single data point and report its id."""
    stream_id = _stream_id(stream_id)
    logger.info("Ingesting data point for stream: %s", stream_id)
    data_point = DataPoint(
        stream_id=stream_id,
        id=generate_id(),
        timestamp=parse_timestamp(request.timestamp),
        payload=request.data,
    )
    await producer.send_data_point(data_point)
    return int(HTTPStatus.CREATED), {"ingested": 1, "ids": [str(data_point.id)]}


async def ingest_batch(
    producer: Publisher, stream_id: uuid.UUID | str, request: BatchIngestRequest
) -> Response:
    """Publish a batch of data points sharing one timestamp and report their ids."""
    stream_id = _stream_id(stream_id)
    count = len(request.data)
    logger.info("Ingesting batch of %d data points for stream: %s", count, stream_id)
    if count == 0:
        raise ValidationError("Batch cannot be empty")

    timestamp = parse_timestamp(request.timestamp)
    data_points = [
        DataPoint(stream_id=stream_id, id=generate_id(), timestamp=timestamp, payload=payload)
        for payload in request.data
    ]
    await producer.send_data_points(data_points)
    return int(HTTPStatus.CREATED), {
        "ingested": count,
        "ids": [str(point.id) for point in data_points],
    }


async def create_stream(producer: Publisher, request: CreateStreamRequest) -> Response:
    """Validate a new stream definition, publish it and return it."""
    logger.info("Creating new stream: %s", request.name)
    stream = Stream(
        id=generate_id(),
        name=request.name,
        schema=request.schema,
        description=request.description,
    )
    if request.retention is not None:
        stream.retention = RetentionConfig(
            days=request.retention.days, max_records=request.retention.max_records
        )
    validate_stream(stream)
    await producer.send_stream_metadata(stream.id, stream)
    return int(HTTPStatus.CREATED), {"stream": stream.to_dict()}


async def list_streams() -> Response:
    """List streams; the ingestion service keeps none of its own."""
    logger.info("Listing all streams")
    return int(HTTPStatus.OK), {"streams": []}


async def get_stream(stream_id: uuid.UUID | str) -> Response:
    """Look up a stream; the ingestion service keeps none, so this always fails."""
    stream_id = _stream_id(stream_id)
    logger.info("Getting stream: %s", stream_id)
    raise NotFoundError(f"Stream not found: {stream_id}")