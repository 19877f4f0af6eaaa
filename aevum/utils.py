"""Small helpers shared by the Aevum services."""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from datetime import datetime, timedelta, timezone
from typing import Any


def generate_id() -> uuid.UUID:
    """Return a new random (version 4) UUID."""
    return uuid.uuid4()


def current_timestamp() -> datetime:
    """Return the current time in UTC."""
    return datetime.now(timezone.utc)


def seconds_ago(n: float) -> datetime:
    """Return the UTC time ``n`` seconds before now."""
    return datetime.now(timezone.utc) - timedelta(seconds=n)


def get_nested_value(data: Any, path: str) -> Any:
    """Follow a dotted path of object keys; return None where it leads nowhere."""
    current = data
    for part in path.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return None
        current = current[part]
    return current


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def _is_integer(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    return isinstance(value, int) or (isinstance(value, float) and value.is_integer())


_JSON_TYPES = {
    "object": lambda v: isinstance(v, Mapping),
    "array": lambda v: isinstance(v, list | tuple),
    "string": lambda v: isinstance(v, str),
    "number": _is_number,
    "integer": _is_integer,
    "boolean": lambda v: isinstance(v, bool),
    "null": lambda v: v is None,
}


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, Mapping):
        return "object"
    if isinstance(value, list | tuple):
        return "array"
    return type(value).__name__


def validate_json(value: Any, schema: Any) -> None:
    """Validate ``value`` against a JSON Schema.

    Supports boolean schemas and the keywords type, enum, const, required,
    properties, additionalProperties, items, minItems, maxItems, minLength,
    maxLength, minimum, maximum, exclusiveMinimum and exclusiveMaximum.
    Raises ValueError describing the first violation found.
    """
    _check(value, schema, "$")


def _check(value: Any, schema: Any, path: str) -> None:
    if schema is True:
        return
    if schema is False:
        raise ValueError(f"{path}: no value is allowed here")
    if not isinstance(schema, Mapping):
        raise ValueError(f"{path}: schema must be an object or a boolean")

    _check_type(value, schema, path)

    if "enum" in schema and value not in schema["enum"]:
        raise ValueError(f"{path}: {value!r} is not one of {schema['enum']!r}")
    if "const" in schema and value != schema["const"]:
        raise ValueError(f"{path}: expected {schema['const']!r}, got {value!r}")

    if _is_number(value):
        _check_number(value, schema, path)
    elif isinstance(value, str):
        _check_string(value, schema, path)
    elif isinstance(value, list | tuple):
        _check_array(value, schema, path)
    elif isinstance(value, Mapping):
        _check_object(value, schema, path)


def _check_type(value: Any, schema: Mapping[str, Any], path: str) -> None:
    expected = schema.get("type")
    if expected is None:
        return
    names = [expected] if isinstance(expected, str) else expected
    if not isinstance(names, list | tuple):
        raise ValueError(f"{path}: schema type must be a string or a list")
    for name in names:
        if name not in _JSON_TYPES:
            raise ValueError(f"{path}: unknown type {name!r} in schema")
    if not any(_JSON_TYPES[name](value) for name in names):
        raise ValueError(f"{path}: expected {' or '.join(names)}, got {_type_name(value)}")


def _check_number(value: float, schema: Mapping[str, Any], path: str) -> None:
    if "minimum" in schema and value < schema["minimum"]:
        raise ValueError(f"{path}: {value} is less than the minimum {schema['minimum']}")
    if "maximum" in schema and value > schema["maximum"]:
        raise ValueError(f"{path}: {value} is greater than the maximum {schema['maximum']}")
    if "exclusiveMinimum" in schema and value <= schema["exclusiveMinimum"]:
        raise ValueError(f"{path}: {value} must be greater than {schema['exclusiveMinimum']}")
    if "exclusiveMaximum" in schema and value >= schema["exclusiveMaximum"]:
        raise ValueError(f"{path}: {value} must be less than {schema['exclusiveMaximum']}")


def _check_string(value: str, schema: Mapping[str, Any], path: str) -> None:
    if "minLength" in schema and len(value) < schema["minLength"]:
        raise ValueError(f"{path}: string is shorter than {schema['minLength']}")
    if "maxLength" in schema and len(value) > schema["maxLength"]:
        raise ValueError(f"{path}: string is longer than {schema['maxLength']}")


def _check_array(value: list | tuple, schema: Mapping[str, Any], path: str) -> None:
    if "minItems" in schema and len(value) < schema["minItems"]:
        raise ValueError(f"{path}: array has fewer than {schema['minItems']} items")
    if "maxItems" in schema and len(value) > schema["maxItems"]:
        raise ValueError(f"{path}: array has more than {schema['maxItems']} items")
    if "items" in schema:
        for index, item in enumerate(value):
            _check(item, schema["items"], f"{path}[{index}]")


def _check_object(value: Mapping[str, Any], schema: Mapping[str, Any], path: str) -> None:
    for name in schema.get("required", ()):
        if name not in value:
            raise ValueError(f"{path}: missing required property {name!r}")
    properties = schema.get("properties", {})
    extra_schema = schema.get("additionalProperties", True)
    for name, item in value.items():
        child = f"{path}.{name}"
        if name in properties:
            _check(item, properties[name], child)
        elif extra_schema is False:
            raise ValueError(f"{path}: unexpected property {name!r}")
        else:
            _check(item, extra_schema, child)