"""Failure taxonomy shared by the API client and the refresh orchestrator.

Missing artwork is not represented here: the client returns ``None`` for it.
"""

from __future__ import annotations


class WidgetError(Exception):
    """Base class for recoverable widget-core failures."""


class NetworkFailure(WidgetError):
    """Connection, DNS, or non-success HTTP status from the player API."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class RequestTimeout(WidgetError):
    """A request exceeded the per-request timeout."""


class DecodeFailure(WidgetError):
    """A response body could not be decoded into the expected shape."""


class RequestCancelled(WidgetError):
    """The owning cancellation scope was revoked while the operation ran."""


class ConfigurationMissing(WidgetError):
    """No API base URL is configured."""
