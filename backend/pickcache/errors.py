"""
backend/pickcache/errors.py

Purpose:
    Exception family for the pick service. Every internal failure is normalized
    to a PickServiceError carrying an HTTP status and a client-safe message
    before it crosses the service boundary. `details` is for server logs only,
    except for InputValidationError whose field errors are returned to clients.
"""

from __future__ import annotations

from typing import Any, Literal


class PickServiceError(Exception):
    status_code: int = 500

    def __init__(self, message: str, *, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class ConfigurationError(PickServiceError):
    """Missing or invalid configuration detected while building the service."""

    status_code = 503


class InputValidationError(PickServiceError):
    status_code = 400

    def __init__(self, message: str, *, errors: list[dict[str, str]]) -> None:
        super().__init__(message, details=errors)
        self.errors = errors


UpstreamErrorKind = Literal["unavailable", "invalid_output", "schema_violation"]


class UpstreamError(PickServiceError):
    """The generation or embedding provider failed or returned unusable data."""

    status_code = 502

    def __init__(self, message: str, *, kind: UpstreamErrorKind, details: Any = None) -> None:
        super().__init__(message, details=details)
        self.kind = kind


class PersistenceError(PickServiceError):
    """Read/write failure unrelated to the (game_id, market_type) unique key."""

    status_code = 500


class PickConflictError(Exception):
    """A write was rejected by the (game_id, market_type) unique index."""

    def __init__(self, game_id: str, market_type: str) -> None:
        super().__init__(f"Pick already exists for {game_id} ({market_type})")
        self.game_id = game_id
        self.market_type = market_type
