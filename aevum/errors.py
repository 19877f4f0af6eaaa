"""Error hierarchy shared by all Aevum services."""

from __future__ import annotations

from http import HTTPStatus
from typing import Any


class AevumError(Exception):
    """Base class for Aevum errors; renders as ``"<label>: <message>"``."""

    label = "Error"
    status_code = HTTPStatus.INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.label}: {self.message}"

    def error_response(self) -> tuple[int, dict[str, Any]]:
        """Return the HTTP status code and JSON body describing this error."""
        return int(self.status_code), {"error": str(self)}


class ConfigError(AevumError):
    label = "Configuration error"


class ValidationError(AevumError):
    label = "Validation error"
    status_code = HTTPStatus.BAD_REQUEST


class IoError(AevumError):
    label = "IO error"


class DatabaseError(AevumError):
    label = "Database error"


class StreamProcessingError(AevumError):
    label = "Stream processing error"


class SerializationError(AevumError):
    label = "Serialization error"


class NotFoundError(AevumError):
    label = "Not found"
    status_code = HTTPStatus.NOT_FOUND


class AuthenticationError(AevumError):
    label = "Authentication error"
    status_code = HTTPStatus.UNAUTHORIZED


class AuthorizationError(AevumError):
    label = "Authorization error"
    status_code = HTTPStatus.FORBIDDEN


class ExternalServiceError(AevumError):
    label = "External service error"


class UnexpectedError(AevumError):
    label = "Unexpected error"