# aevum

Building blocks for a time-series data platform, with no runtime dependencies
beyond the standard library (Python 3.11 or later).

| Module | What it holds |
| --- | --- |
| `aevum.models` | `Stream`, `RetentionConfig`, `DataPoint`, `Pipeline`, the operation specs and their dict forms |
| `aevum.errors` | `AevumError` and its subclasses, each with an HTTP status |
| `aevum.utils` | ids, timestamps, dotted-path lookup, a small JSON Schema checker |
| `aevum.validation` | checks for stream definitions and incoming payloads |
| `aevum.config` | typed settings for four services, loaded from TOML files and the environment |
| `aevum.operations` | filter, transform, windowed aggregation and anomaly flagging |
| `aevum.pipeline` | `PipelineExecutor` and `PipelineManager` |
| `aevum.api_handlers` | async handlers for querying streams and data |
| `aevum.ingest_handlers` | async handlers for ingesting data and creating streams |

## Installation

```
pip install .
```

## Models

```python
from aevum.models import Stream, DataPoint
from aevum.utils import generate_id, current_timestamp

stream = Stream(id=generate_id(), name="sensors", schema={"type": "object"})
point = DataPoint(
    stream_id=stream.id,
    id=generate_id(),
    timestamp=current_timestamp(),
    payload={"temperature": 28.0},
)
assert DataPoint.from_dict(point.to_dict()) == point
```

`to_dict()` gives JSON-ready values: UUIDs as strings and timestamps as UTC
ISO 8601 strings ending in `Z`. `from_dict()` raises
`aevum.errors.SerializationError` on a missing field or a value of the wrong
type; timestamps must carry a UTC offset.

A stream keeps data for 30 days unless its `RetentionConfig` says otherwise.

Pipeline operations are `FilterSpec`, `TransformSpec`, `AggregateSpec` (with an
`AggregationFunction`: `SUM`, `AVERAGE`, `MIN`, `MAX`, `COUNT`) and
`AnomalyDetectionSpec`. `operation_to_dict()` and `operation_from_dict()`
encode them as single-key mappings such as `{"Filter": {"condition": "..."}}`.

## Utilities

- `generate_id()` returns a random UUID; `current_timestamp()` and
  `seconds_ago(n)` return UTC datetimes.
- `get_nested_value(data, "a.b.c")` follows object keys and returns `None`
  where the path leads nowhere.
- `validate_json(value, schema)` raises `ValueError` on the first violation.
  It understands boolean schemas and the keywords `type`, `enum`, `const`,
  `required`, `properties`, `additionalProperties`, `items`, `minItems`,
  `maxItems`, `minLength`, `maxLength`, `minimum`, `maximum`,
  `exclusiveMinimum` and `exclusiveMaximum`.

## Validation

```python
from aevum.validation import validate_stream, validate_data, validate_data_batch
from aevum.errors import ValidationError

try:
    validate_stream(stream)
except ValidationError as exc:
    print(exc)
```

`validate_stream` rejects a blank name, a schema that is not a JSON object and
zero retention days. `validate_data` checks a payload against the stream's
schema; `validate_data_batch` stops at the first invalid item and names its
index.

## Operations and pipelines

Operations are applied in order to data points from the pipeline's source
stream; if the pipeline has a `destination_stream_id`, results are moved to
that stream.

- Filter conditions have the form `field op number`, with `>`, `>=`, `<`,
  `<=`, `==` (or `=`) and `!=`. A condition that is not three words lets
  everything through; a missing or non-numeric field drops the point.
- Transformations have the form `new_field: field op number [op number]`
  with `*`, `/`, `+`, `-`, evaluated left to right. If the expression cannot
  be applied, the payload is left unchanged.
- Aggregation only acts on batches (`process_single` returns `None`). Points
  are grouped into epoch-aligned windows of `window_seconds`; each window that
  has closed by the current time yields one point whose payload holds the
  aggregate under the field name plus `window_start`, `window_end`,
  `window_size_seconds`, `aggregation` and `count`.
- Anomaly detection marks a point whose `value` exceeds the `threshold`
  parameter with `is_anomaly` and an `anomaly_detection` record.

`create_operation(spec, stream_id)` builds the operation for a spec.
`AggregateOperation` and `AnomalyDetectionOperation` accept a keyword-only
`clock` callable for the current time.

```python
import asyncio
from aevum.models import Pipeline, FilterSpec, TransformSpec
from aevum.pipeline import PipelineManager

pipeline = Pipeline(
    id=generate_id(),
    name="hot readings",
    source_stream_id=stream.id,
    operations=[
        FilterSpec(condition="temperature > 25"),
        TransformSpec(transformation="fahrenheit: temperature * 1.8 + 32"),
    ],
)

manager = PipelineManager()
manager.register_pipeline(pipeline)
results = asyncio.run(manager.process(point))
print(results[0].payload["fahrenheit"])
```

`PipelineManager.process_batch` groups points by stream and runs each group
through that stream's pipelines as a batch.

## Configuration

`aevum.config` has typed settings for an API service (`ApiConfig`), an
ingestion service (`IngestionConfig`), a processor (`ProcessorConfig`) and a
storage service (`StorageConfig`). Each has a `from_dict()` and a loader:
`load_api_config`, `load_ingestion_config`, `load_processor_config` and
`load_storage_config`, each taking an optional environment mapping (default
`os.environ`).

Settings are merged in layers from the configuration directory (`CONFIG_DIR`,
default `./config`): `base.toml`, then `<RUN_ENV>.toml` (`RUN_ENV` defaults to
`development`), then `local.toml`, each only if it exists. Environment
variables come last: the service prefix (`AEVUM_API`, `AEVUM_INGESTION`,
`AEVUM_PROCESSOR`, `AEVUM_STORAGE`), then nested keys joined with `__`, for
example `AEVUM_API__SERVER__PORT=9000`. Their values are read as booleans or
numbers where possible. `load_layered(prefix, environ)` returns the merged
mapping itself.

```python
from aevum.config import load_api_config

config = load_api_config()
print(config.server.host, config.server.port)
```

When loading, every setting of a section must be present in the merged
layers (the only optional section is `redis`); the dataclass defaults apply
only when building the objects in code. A missing or malformed setting raises
`aevum.errors.ConfigError`.

## Handlers

The handlers are plain async functions returning `(status, body)`, where the
body is JSON-ready. Errors are raised as `AevumError` subclasses.

`aevum.api_handlers` reads through a `Repositories` object holding a
`StreamRepository` and a `TimeSeriesRepository` (protocols you implement):
`health_check`, `list_streams`, `get_stream`, `get_stream_fields`,
`query_data` and `get_field_stats` (with a `DataQuery`), `aggregate_data`
(with an `AggregationQuery`) and `get_latest`. Time ranges are RFC 3339; the
end defaults to now and the start to one day before the end.

`aevum.ingest_handlers` publishes through a `Publisher` protocol:
`ingest_data` (`IngestRequest`), `ingest_batch` (`BatchIngestRequest`, which
must not be empty), `create_stream` (`CreateStreamRequest`, validated with
`validate_stream`), plus `health_check`, `list_streams` (always empty) and
`get_stream` (always raises `NotFoundError`).

## Errors

Every error derives from `AevumError` and prints as `"<label>: <message>"`.
`error_response()` returns the HTTP status and a body of the form
`{"error": "<message>"}`. `NotFoundError` maps to 404, `ValidationError` to
400, `AuthenticationError` to 401, `AuthorizationError` to 403 and everything
else to 500.

## What this package does not do

It has no commands, runs no HTTP server, and talks to no message broker or
database. The handlers and operations are meant to be wired into a web
framework, a queue consumer and a storage layer of your choosing, through the
`StreamRepository`, `TimeSeriesRepository` and `Publisher` protocols.

## Development

```
pip install -e ".[test]"
pytest
```