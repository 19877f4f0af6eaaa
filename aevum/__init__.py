"""Time-series stream models, validation, configuration, processing pipelines and service handlers."""

__version__ = "0.1.0"

__all__ = [
    "api_handlers",
    "config",
    "errors",
    "ingest_handlers",
    "models",
    "operations",
    "pipeline",
    "utils",
    "validation",
]