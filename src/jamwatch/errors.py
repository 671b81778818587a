"""Error taxonomy shared by the ingestion path and the HTTP layer."""

from __future__ import annotations

from typing import Any


class JamwatchError(Exception):
    """Base class for application errors."""


class ReportValidationError(JamwatchError):
    """Raised when a submission carries malformed fields or values outside an enum."""

    def __init__(self, details: list[dict[str, Any]]) -> None:
        super().__init__("invalid input")
        self.details = details


class RateLimited(JamwatchError):
    """Raised when a guarded action exceeds its threshold and the caller must back off."""

    def __init__(self, action_kind: str, message: str) -> None:
        super().__init__(message)
        self.action_kind = action_kind
        self.message = message


class StorageUnavailable(JamwatchError):
    """Raised when a durable read or write could not be completed."""


class UpstreamError(JamwatchError):
    """Raised when a third-party endpoint fails."""
