import uuid
from datetime import datetime, timedelta, timezone
from http import HTTPStatus

import pytest

from aevum.api_handlers import (
    AggregationQuery,
    DataQuery,
    FieldStats,
    Repositories,
    aggregate_data,
    extract_fields_from_schema,
    get_field_stats,
    get_latest,
    get_stream,
    get_stream_fields,
    health_check,
    list_streams,
    parse_time_range,
    query_data,
)
from aevum.errors import NotFoundError, ValidationError
from aevum.models import DataPoint, Stream

STREAM_ID = uuid.UUID("44444444-4444-4444-8444-444444444444")
MISSING_ID = uuid.UUID("55555555-5555-4555-8555-555555555555")
START = "2024-01-01T00:00:00Z"
END = "2024-01-02T00:00:00Z"


class FakeStreams:
    def __init__(self, streams):
        self._streams = {s.id: s for s in streams}

    async def get(self, stream_id):
        return self._streams.get(stream_id)

    async def list(self):
        return sorted(self._streams.values(), key=lambda s: s.name)


class FakeSeries:
    def __init__(self, points=(), stats=None):
        self.points = list(points)
        self.stats = stats
        self.calls = []

    async def query(self, stream_id, start_time, end_time, limit):
        self.calls.append(("query", stream_id, start_time, end_time, limit))
        selected = [p for p in self.points if start_time <= p.timestamp <= end_time]
        return selected if limit is None else selected[:limit]

    async def query_aggregated(self, stream_id, start_time, end_time, interval, function, field):
        self.calls.append(("aggregated", interval, function, field))
        return self.points[:1]

    async def query_latest(self, stream_id):
        return max(self.points, key=lambda p: p.timestamp, default=None)

    async def get_field_stats(self, stream_id, field, start_time, end_time):
        self.calls.append(("stats", field, start_time, end_time))
        return self.stats


def make_stream(**overrides):
    values = dict(
        id=STREAM_ID,
        name="sensors",
        schema={"type": "object", "properties": {"temperature": {}, "humidity": {}}},
    )
    values.update(overrides)
    return Stream(**values)


def make_point(hour, value):
    return DataPoint(
        stream_id=STREAM_ID,
        id=uuid.uuid4(),
        timestamp=datetime(2024, 1, 1, hour, tzinfo=timezone.utc),
        payload={"value": value},
    )


def repos(points=(), stats=None, streams=None):
    return Repositories(
        streams=FakeStreams([make_stream()] if streams is None else streams),
        time_series=FakeSeries(points, stats),
    )


@pytest.mark.asyncio
async def test_health_check():
    status, body = await health_check()
    assert status == HTTPStatus.OK
    assert body["status"] == "ok"


def test_parse_time_range_explicit():
    start, end = parse_time_range(START, END)
    assert start == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert end == datetime(2024, 1, 2, tzinfo=timezone.utc)


def test_parse_time_range_offset_normalised_to_utc():
    start, _ = parse_time_range("2024-01-01T02:00:00+02:00", END)
    assert start == datetime(2024, 1, 1, tzinfo=timezone.utc)


def test_parse_time_range_defaults_to_one_day():
    start, end = parse_time_range(None, None)
    assert end - start == timedelta(days=1)
    assert end.tzinfo is not None


def test_parse_time_range_default_start_relative_to_end():
    start, end = parse_time_range(None, END)
    assert end - start == timedelta(days=1)


@pytest.mark.parametrize("text", ["yesterday", "2024-01-01", "2024-01-01T00:00:00"])
def test_parse_time_range_rejects_bad_start(text):
    with pytest.raises(ValidationError, match="Invalid start time format"):
        parse_time_range(text, END)


def test_parse_time_range_rejects_bad_end():
    with pytest.raises(ValidationError, match="Invalid end time format"):
        parse_time_range(START, "not a time")


def test_parse_time_range_rejects_reversed_range():
    with pytest.raises(ValidationError, match="Start time must be before end time"):
        parse_time_range(END, START)


def test_extract_fields_from_schema():
    assert extract_fields_from_schema({"properties": {"a": {}, "b": {}}}) == ["a", "b"]
    assert extract_fields_from_schema({"type": "object"}) == []
    assert extract_fields_from_schema([1, 2]) == []


@pytest.mark.asyncio
async def test_list_streams():
    first = make_stream(id=uuid.uuid4(), name="b")
    second = make_stream(id=uuid.uuid4(), name="a")
    status, body = await list_streams(repos(streams=[first, second]))
    assert status == HTTPStatus.OK
    assert body == {"streams": [second.to_dict(), first.to_dict()]}


@pytest.mark.asyncio
async def test_get_stream_found_and_missing():
    r = repos()
    status, body = await get_stream(r, str(STREAM_ID))
    assert status == HTTPStatus.OK
    assert body["stream"]["name"] == "sensors"
    with pytest.raises(NotFoundError, match=str(MISSING_ID)):
        await get_stream(r, MISSING_ID)


@pytest.mark.asyncio
async def test_get_stream_rejects_bad_id():
    with pytest.raises(ValidationError):
        await get_stream(repos(), "not-a-uuid")


@pytest.mark.asyncio
async def test_get_stream_fields():
    status, fields = await get_stream_fields(repos(), STREAM_ID)
    assert status == HTTPStatus.OK
    assert fields == ["temperature", "humidity"]


@pytest.mark.asyncio
async def test_query_data_returns_points_and_meta():
    points = [make_point(1, 1), make_point(2, 2)]
    r = repos(points)
    status, body = await query_data(r, STREAM_ID, DataQuery(start=START, end=END, limit=5))
    assert status == HTTPStatus.OK
    assert body["data"] == [p.to_dict() for p in points]
    assert body["meta"]["count"] == len(points)
    assert body["meta"]["start_time"] == START
    assert body["meta"]["end_time"] == END
    assert body["meta"]["stream_id"] == str(STREAM_ID)
    assert r.time_series.calls[0][-1] == 5


@pytest.mark.asyncio
async def test_query_data_missing_stream():
    with pytest.raises(NotFoundError):
        await query_data(repos(), MISSING_ID, DataQuery())


@pytest.mark.asyncio
async def test_query_data_invalid_range_before_query():
    r = repos()
    with pytest.raises(ValidationError):
        await query_data(r, STREAM_ID, DataQuery(start=END, end=START))
    assert r.time_series.calls == []


@pytest.mark.asyncio
async def test_aggregate_data_passes_parameters():
    points = [make_point(1, 1)]
    r = repos(points)
    query = AggregationQuery(interval="1 hour", function="avg", field="value", start=START, end=END)
    status, body = await aggregate_data(r, STREAM_ID, query)
    assert status == HTTPStatus.OK
    assert body["meta"]["count"] == len(points)
    assert r.time_series.calls == [("aggregated", "1 hour", "avg", "value")]


@pytest.mark.asyncio
async def test_get_latest():
    older, newer = make_point(1, 1), make_point(3, 3)
    status, body = await get_latest(repos([older, newer]), STREAM_ID)
    assert status == HTTPStatus.OK
    assert body == newer.to_dict()
    _, empty = await get_latest(repos(), STREAM_ID)
    assert empty is None


@pytest.mark.asyncio
async def test_get_field_stats():
    first = datetime(2024, 1, 1, 1, tzinfo=timezone.utc)
    last = datetime(2024, 1, 1, 5, tzinfo=timezone.utc)
    stats = FieldStats(min=1.0, max=5.0, avg=3.0, stddev=0.5, count=7,
                       first_timestamp=first, last_timestamp=last)
    r = repos(stats=stats)
    status, body = await get_field_stats(r, STREAM_ID, "value", DataQuery(start=START, end=END))
    assert status == HTTPStatus.OK
    assert body["field"] == "value"
    assert (body["min"], body["max"], body["avg"], body["stddev"], body["count"]) == (
        stats.min, stats.max, stats.avg, stats.stddev, stats.count
    )
    assert body["first_timestamp"] == "2024-01-01T01:00:00Z"
    assert r.time_series.calls[0][1] == "value"


@pytest.mark.asyncio
async def test_get_field_stats_missing_stream():
    with pytest.raises(NotFoundError):
        await get_field_stats(repos(), MISSING_ID, "value", DataQuery())