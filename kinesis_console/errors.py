"""
Error types for Kinesis Console.

This module defines all exception types raised by the console:
- ConsoleError: Base exception
- InvalidArgumentError: Missing or empty required input
- UpstreamError: Any failure reported by the stream service
- StreamConnectionError: The stream client is unusable

Invariants:
    - All errors inherit from ConsoleError
    - InvalidArgumentError is raised before any upstream call is made
    - UpstreamError keeps the upstream message verbatim
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class ConsoleError(Exception):
    """Base exception for all Kinesis Console errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "CONSOLE_ERROR"
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON error body returned by the API."""
        return {
            "error": self.message,
            "error_code": self.code,
            "details": self.details,
        }


class InvalidArgumentError(ConsoleError):
    """A required input is missing or empty.

    Raised when:
    - streamName is empty for delete, describe or snapshot
    - streamArn or data is empty for publish
    """

    def __init__(self, message: str, field_name: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="INVALID_ARGUMENT",
            details={"field": field_name},
        )
        self.field_name = field_name


class UpstreamError(ConsoleError):
    """The stream service reported a failure.

    No distinction is made between a missing stream, a vanished shard and
    a transient network failure: all of them surface as UpstreamError.

    Attributes:
        shard_id: Shard being read when the failure happened, if any
        operation: Upstream operation name, if known
    """

    def __init__(
        self,
        message: str,
        shard_id: Optional[str] = None,
        operation: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="UPSTREAM_ERROR",
            details={"shard_id": shard_id, "operation": operation},
        )
        self.shard_id = shard_id
        self.operation = operation


class StreamConnectionError(UpstreamError):
    """The stream client is not connected or the endpoint is unreachable."""

    pass
