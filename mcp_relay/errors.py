"""
Relay error taxonomy.

Only configuration and discovery errors are allowed to stop the process.
Remote call failures are caught where the call is made and either folded
into a tool result or re-raised as one of the *Failure types below for the
protocol library to report.
"""

from __future__ import annotations

from typing import Any


class RelayError(Exception):
    """Base class for every error raised by the relay."""


class ConfigInvalid(RelayError):
    """Missing or malformed credential or config file."""


class TargetNotFound(RelayError):
    """The configured target server is absent from the backend response."""

    def __init__(self, server_id: str, reason: str = ""):
        self.server_id = server_id
        self.reason = reason
        message = f"Target server '{server_id}' not found"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class FetchFailure(RelayError):
    """Network or auth error during startup discovery."""

    def __init__(self, message: str, status: int | None = None, body: Any = None):
        self.status = status
        self.body = body
        super().__init__(message)


class ForwardingFailure(RelayError):
    """A forwarded call failed. Carries the transport-level CallFailure."""

    def __init__(self, message: str, failure: Any = None):
        self.failure = failure
        super().__init__(message)


class ToolExecutionFailure(ForwardingFailure):
    """Remote tool call failed or returned malformed data."""


class ResourceReadFailure(ForwardingFailure):
    """Remote resource read failed."""


class PromptRetrievalFailure(ForwardingFailure):
    """Remote prompt retrieval failed."""
