"""Run processing pipelines over data points."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import replace
from uuid import UUID

from .models import DataPoint, Pipeline
from .operations import StreamOperation, create_operation

logger = logging.getLogger(__name__)


class PipelineExecutor:
    """Applies one pipeline's operations, in order, to data points of its source stream."""

    def __init__(self, pipeline: Pipeline) -> None:
        logger.info("Creating pipeline executor for: %s", pipeline.name)
        self.pipeline = pipeline
        self.operations: list[StreamOperation] = [
            create_operation(operation, pipeline.source_stream_id)
            for operation in pipeline.operations
        ]

    def _route(self, data_points: list[DataPoint]) -> list[DataPoint]:
        destination = self.pipeline.destination_stream_id
        if destination is None:
            return data_points
        return [replace(point, stream_id=destination) for point in data_points]

    async def process(self, data_point: DataPoint) -> list[DataPoint]:
        """Run one data point through every operation; unrelated streams give nothing."""
        logger.debug("Processing data point through pipeline: %s", self.pipeline.name)
        if data_point.stream_id != self.pipeline.source_stream_id:
            logger.debug("Skipping data point from unrelated stream")
            return []

        current = [data_point]
        for operation in self.operations:
            survivors = []
            for point in current:
                processed = await operation.process_single(point)
                if processed is not None:
                    survivors.append(processed)
            current = survivors
            if not current:
                break
        return self._route(current)

    async def process_batch(self, data_points: Iterable[DataPoint]) -> list[DataPoint]:
        """Run the points of the source stream through every operation as a batch."""
        data_points = list(data_points)
        if not data_points:
            return []
        logger.info(
            "Processing batch of %d data points through pipeline: %s",
            len(data_points),
            self.pipeline.name,
        )
        current = [p for p in data_points if p.stream_id == self.pipeline.source_stream_id]
        if not current:
            return []
        for operation in self.operations:
            current = await operation.process_batch(current)
            if not current:
                break
        return self._route(current)


class PipelineManager:
    """Holds the registered pipelines and routes data points to them."""

    def __init__(self) -> None:
        self.pipelines: list[PipelineExecutor] = []

    def register_pipeline(self, pipeline: Pipeline) -> None:
        """Build an executor for the pipeline and register it."""
        logger.info("Registering pipeline: %s", pipeline.name)
        self.pipelines.append(PipelineExecutor(pipeline))

    def _for_stream(self, stream_id: UUID) -> list[PipelineExecutor]:
        return [e for e in self.pipelines if e.pipeline.source_stream_id == stream_id]

    async def process(self, data_point: DataPoint) -> list[DataPoint]:
        """Run a data point through every pipeline reading its stream."""
        logger.debug(
            "Processing data point through pipelines for stream: %s", data_point.stream_id
        )
        results: list[DataPoint] = []
        for executor in self._for_stream(data_point.stream_id):
            results.extend(await executor.process(data_point))
        return results

    async def process_batch(self, data_points: Iterable[DataPoint]) -> list[DataPoint]:
        """Group points by stream and run each group through its pipelines."""
        data_points = list(data_points)
        if not data_points:
            return []
        logger.info("Processing batch of %d data points through pipelines", len(data_points))

        by_stream: dict[UUID, list[DataPoint]] = defaultdict(list)
        for point in data_points:
            by_stream[point.stream_id].append(point)

        results: list[DataPoint] = []
        for stream_id, points in by_stream.items():
            for executor in self._for_stream(stream_id):
                results.extend(await executor.process_batch(list(points)))
        return results