"""Validation of incoming data and of stream definitions."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from .errors import ValidationError
from .models import Stream
from .utils import validate_json

logger = logging.getLogger(__name__)


def validate_data(data: Any, stream: Stream) -> None:
    """Check one payload against the stream's schema; raise ValidationError if it fails."""
    logger.debug("Validating data against schema for stream: %s", stream.name)
    try:
        validate_json(data, stream.schema)
    except ValueError as exc:
        raise ValidationError(f"Data validation failed: {exc}") from exc


def validate_data_batch(data_batch: Iterable[Any], stream: Stream) -> None:
    """Check every payload in a batch, stopping at the first invalid one."""
    items = list(data_batch)
    logger.debug(
        "Validating batch of %d data points against schema for stream: %s",
        len(items),
        stream.name,
    )
    for index, data in enumerate(items):
        try:
            validate_data(data, stream)
        except ValidationError as exc:
            raise ValidationError(
                f"Validation failed for item {index} in batch: {exc}"
            ) from exc


def validate_stream(stream: Stream) -> None:
    """Check a stream definition; raise ValidationError on the first problem."""
    logger.debug("Validating stream configuration: %s", stream.name)
    if not stream.name.strip():
        raise ValidationError("Stream name cannot be empty")
    if not isinstance(stream.schema, Mapping):
        raise ValidationError("Stream schema must be a JSON object")
    if stream.retention.days == 0:
        raise ValidationError("Retention days must be greater than 0")