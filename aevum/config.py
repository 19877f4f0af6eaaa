"""Service configuration: typed settings layered from TOML files and the environment."""

from __future__ import annotations

import os
import re
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .errors import ConfigError

_ENV_SEPARATOR = "__"
_U16_MAX = 2**16 - 1
_U32_MAX = 2**32 - 1
_U64_MAX = 2**64 - 1

_INT_RE = re.compile(r"[+-]?\d+")
_FLOAT_RE = re.compile(r"[+-]?(\d+\.?\d*([eE][+-]?\d+)?|\.\d+([eE][+-]?\d+)?|inf|infinity|nan)")
_TRUE_WORDS = {"true", "1", "on", "yes"}
_FALSE_WORDS = {"false", "0", "off", "no"}


class _Reader:
    """Reads typed fields out of one configuration table."""

    def __init__(self, data: Any, path: str) -> None:
        if not isinstance(data, Mapping):
            where = path or "configuration"
            raise ConfigError(f"invalid type for `{where}`: expected a table")
        self._data = data
        self._path = path

    def _name(self, key: str) -> str:
        return f"{self._path}.{key}" if self._path else key

    def _get(self, key: str) -> Any:
        try:
            return self._data[key]
        except KeyError:
            raise ConfigError(f"missing field `{self._name(key)}`") from None

    def text(self, key: str) -> str:
        value = self._get(key)
        if isinstance(value, str):
            return value
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, int | float):
            return str(value)
        raise ConfigError(f"invalid type for `{self._name(key)}`: expected a string")

    def integer(self, key: str, maximum: int) -> int:
        value = self._get(key)
        if isinstance(value, str) and _INT_RE.fullmatch(value.strip()):
            value = int(value.strip())
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigError(f"invalid type for `{self._name(key)}`: expected an integer")
        if not 0 <= value <= maximum:
            raise ConfigError(
                f"invalid value for `{self._name(key)}`: {value} is outside 0..={maximum}"
            )
        return value

    def boolean(self, key: str) -> bool:
        value = self._get(key)
        if isinstance(value, bool):
            return value
        if isinstance(value, int | float):
            return value != 0
        if isinstance(value, str):
            word = value.strip().lower()
            if word in _TRUE_WORDS:
                return True
            if word in _FALSE_WORDS:
                return False
        raise ConfigError(f"invalid type for `{self._name(key)}`: expected a boolean")

    def text_list(self, key: str) -> list[str]:
        value = self._get(key)
        if not isinstance(value, list):
            raise ConfigError(f"invalid type for `{self._name(key)}`: expected a list")
        items = _Reader({str(i): item for i, item in enumerate(value)}, self._name(key))
        return [items.text(str(i)) for i in range(len(value))]

    def table(self, key: str) -> _Reader:
        return _Reader(self._get(key), self._name(key))

    def optional_table(self, key: str) -> _Reader | None:
        value = self._data.get(key)
        return None if value is None else _Reader(value, self._name(key))


# --- API service -------------------------------------------------------------


@dataclass
class ApiServerConfig:
    """HTTP server settings of the API service."""

    host: str = "0.0.0.0"
    port: int = 8080
    timeout_seconds: int = 30


@dataclass
class DatabaseConfig:
    """Connection pool settings of the API service's database."""

    url: str
    max_connections: int = 10
    min_connections: int = 2
    connect_timeout_seconds: int = 10


@dataclass
class CorsConfig:
    """Cross-origin request settings."""

    enabled: bool = True
    allowed_origins: list[str] = field(default_factory=lambda: ["*"])
    allow_credentials: bool = False


@dataclass
class ApiConfig:
    """Complete configuration of the API service."""

    database: DatabaseConfig
    server: ApiServerConfig = field(default_factory=ApiServerConfig)
    cors: CorsConfig = field(default_factory=CorsConfig)

    @classmethod
    def from_dict(cls, data: Any) -> ApiConfig:
        root = _Reader(data, "")
        server = root.table("server")
        database = root.table("database")
        cors = root.table("cors")
        return cls(
            server=ApiServerConfig(
                host=server.text("host"),
                port=server.integer("port", _U16_MAX),
                timeout_seconds=server.integer("timeout_seconds", _U64_MAX),
            ),
            database=DatabaseConfig(
                url=database.text("url"),
                max_connections=database.integer("max_connections", _U32_MAX),
                min_connections=database.integer("min_connections", _U32_MAX),
                connect_timeout_seconds=database.integer("connect_timeout_seconds", _U64_MAX),
            ),
            cors=CorsConfig(
                enabled=cors.boolean("enabled"),
                allowed_origins=cors.text_list("allowed_origins"),
                allow_credentials=cors.boolean("allow_credentials"),
            ),
        )


# --- Ingestion service -------------------------------------------------------


@dataclass
class IngestionServerConfig:
    """HTTP server settings of the ingestion service."""

    host: str = "0.0.0.0"
    port: int = 8080


@dataclass
class IngestionKafkaTopics:
    """Topics the ingestion service publishes to."""

    raw_data: str
    stream_metadata: str


@dataclass
class IngestionKafkaConfig:
    """Kafka settings of the ingestion service."""

    brokers: str
    topics: IngestionKafkaTopics
    client_id: str = "aevum-ingestion"


@dataclass
class RedisConfig:
    """Redis connection settings."""

    url: str
    pool_size: int = 10


def _redis_from(reader: _Reader | None) -> RedisConfig | None:
    if reader is None:
        return None
    return RedisConfig(url=reader.text("url"), pool_size=reader.integer("pool_size", _U32_MAX))


@dataclass
class IngestionConfig:
    """Complete configuration of the ingestion service."""

    kafka: IngestionKafkaConfig
    server: IngestionServerConfig = field(default_factory=IngestionServerConfig)
    redis: RedisConfig | None = None

    @classmethod
    def from_dict(cls, data: Any) -> IngestionConfig:
        root = _Reader(data, "")
        server = root.table("server")
        kafka = root.table("kafka")
        topics = kafka.table("topics")
        return cls(
            server=IngestionServerConfig(
                host=server.text("host"),
                port=server.integer("port", _U16_MAX),
            ),
            kafka=IngestionKafkaConfig(
                brokers=kafka.text("brokers"),
                client_id=kafka.text("client_id"),
                topics=IngestionKafkaTopics(
                    raw_data=topics.text("raw_data"),
                    stream_metadata=topics.text("stream_metadata"),
                ),
            ),
            redis=_redis_from(root.optional_table("redis")),
        )


# --- Processor service -------------------------------------------------------


@dataclass
class ProcessorKafkaTopics:
    """Topics the processor consumes from and produces to."""

    raw_data: str
    processed_data: str
    stream_metadata: str
    pipelines: str


@dataclass
class ProcessorKafkaConfig:
    """Kafka settings of the processor service."""

    brokers: str
    topics: ProcessorKafkaTopics
    client_id: str = "aevum-processor"
    group_id: str = "aevum-processor-group"


def _cpu_count() -> int:
    return os.cpu_count() or 1


@dataclass
class ProcessingConfig:
    """Batching and concurrency settings of the processor."""

    workers: int = field(default_factory=_cpu_count)
    batch_size: int = 100
    interval_ms: int = 100


@dataclass
class ProcessorConfig:
    """Complete configuration of the processor service."""

    kafka: ProcessorKafkaConfig
    processing: ProcessingConfig = field(default_factory=ProcessingConfig)
    redis: RedisConfig | None = None

    @classmethod
    def from_dict(cls, data: Any) -> ProcessorConfig:
        root = _Reader(data, "")
        kafka = root.table("kafka")
        topics = kafka.table("topics")
        processing = root.table("processing")
        return cls(
            kafka=ProcessorKafkaConfig(
                brokers=kafka.text("brokers"),
                client_id=kafka.text("client_id"),
                group_id=kafka.text("group_id"),
                topics=ProcessorKafkaTopics(
                    raw_data=topics.text("raw_data"),
                    processed_data=topics.text("processed_data"),
                    stream_metadata=topics.text("stream_metadata"),
                    pipelines=topics.text("pipelines"),
                ),
            ),
            processing=ProcessingConfig(
                workers=processing.integer("workers", _U64_MAX),
                batch_size=processing.integer("batch_size", _U64_MAX),
                interval_ms=processing.integer("interval_ms", _U64_MAX),
            ),
            redis=_redis_from(root.optional_table("redis")),
        )


# --- Storage service ---------------------------------------------------------


@dataclass
class MigrationConfig:
    """Database migration settings."""

    run_migrations: bool = True
    migration_path: str = "./migrations"


@dataclass
class StorageDatabaseConfig:
    """Database settings of the storage service."""

    url: str
    max_connections: int = 10
    min_connections: int = 2
    connect_timeout_seconds: int = 10
    migrations: MigrationConfig = field(default_factory=MigrationConfig)


@dataclass
class StorageKafkaTopics:
    """Topics the storage service consumes from."""

    raw_data: str
    processed_data: str
    stream_metadata: str


@dataclass
class StorageKafkaConfig:
    """Kafka settings of the storage service."""

    brokers: str
    topics: StorageKafkaTopics
    client_id: str = "aevum-storage"
    group_id: str = "aevum-storage-group"


@dataclass
class StorageConfig:
    """Complete configuration of the storage service."""

    database: StorageDatabaseConfig
    kafka: StorageKafkaConfig

    @classmethod
    def from_dict(cls, data: Any) -> StorageConfig:
        root = _Reader(data, "")
        database = root.table("database")
        migrations = database.table("migrations")
        kafka = root.table("kafka")
        topics = kafka.table("topics")
        return cls(
            database=StorageDatabaseConfig(
                url=database.text("url"),
                max_connections=database.integer("max_connections", _U32_MAX),
                min_connections=database.integer("min_connections", _U32_MAX),
                connect_timeout_seconds=database.integer("connect_timeout_seconds", _U64_MAX),
                migrations=MigrationConfig(
                    run_migrations=migrations.boolean("run_migrations"),
                    migration_path=migrations.text("migration_path"),
                ),
            ),
            kafka=StorageKafkaConfig(
                brokers=kafka.text("brokers"),
                client_id=kafka.text("client_id"),
                group_id=kafka.text("group_id"),
                topics=StorageKafkaTopics(
                    raw_data=topics.text("raw_data"),
                    processed_data=topics.text("processed_data"),
                    stream_metadata=topics.text("stream_metadata"),
                ),
            ),
        )


# --- Layered loading ---------------------------------------------------------


def _merge(target: dict[str, Any], source: Mapping[str, Any]) -> None:
    for key, value in source.items():
        existing = target.get(key)
        if isinstance(value, Mapping) and isinstance(existing, dict):
            _merge(existing, value)
        elif isinstance(value, Mapping):
            fresh: dict[str, Any] = {}
            _merge(fresh, value)
            target[key] = fresh
        else:
            target[key] = value


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise ConfigError(f"{path}: {exc}") from exc


def _parse_env_value(raw: str) -> Any:
    lowered = raw.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    if _INT_RE.fullmatch(raw):
        value = int(raw)
        if -(2**63) <= value < 2**63:
            return value
    if _FLOAT_RE.fullmatch(lowered):
        return float(raw)
    return raw


def _environment_overrides(prefix: str, environ: Mapping[str, str]) -> dict[str, Any]:
    lead = (prefix + _ENV_SEPARATOR).lower()
    overrides: dict[str, Any] = {}
    for name, raw in environ.items():
        lowered = name.lower()
        if not lowered.startswith(lead) or len(lowered) == len(lead):
            continue
        parts = lowered[len(lead):].split(_ENV_SEPARATOR)
        node = overrides
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = node[part] = {}
            node = child
        node[parts[-1]] = _parse_env_value(raw)
    return overrides


def load_layered(prefix: str, environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    """Merge base, run-environment and local TOML files, then prefixed environment variables.

    Files live in ``CONFIG_DIR`` (default ``./config``); the run environment comes
    from ``RUN_ENV`` (default ``development``). Variables look like
    ``<PREFIX>__SECTION__KEY`` and their values are parsed as booleans or numbers
    where possible.
    """
    env = os.environ if environ is None else environ
    config_dir = Path(env.get("CONFIG_DIR", "./config"))
    run_env = env.get("RUN_ENV", "development")

    merged: dict[str, Any] = {}
    for name in ("base.toml", f"{run_env}.toml", "local.toml"):
        path = config_dir / name
        if path.exists():
            _merge(merged, _read_toml(path))
    _merge(merged, _environment_overrides(prefix, env))
    return merged


def load_api_config(environ: Mapping[str, str] | None = None) -> ApiConfig:
    """Load the API service configuration."""
    return ApiConfig.from_dict(load_layered("AEVUM_API", environ))


def load_ingestion_config(environ: Mapping[str, str] | None = None) -> IngestionConfig:
    """Load the ingestion service configuration."""
    return IngestionConfig.from_dict(load_layered("AEVUM_INGESTION", environ))


def load_processor_config(environ: Mapping[str, str] | None = None) -> ProcessorConfig:
    """Load the processor service configuration."""
    return ProcessorConfig.from_dict(load_layered("AEVUM_PROCESSOR", environ))


def load_storage_config(environ: Mapping[str, str] | None = None) -> StorageConfig:
    """Load the storage service configuration."""
    return StorageConfig.from_dict(load_layered("AEVUM_STORAGE", environ))