"""Queue exceptions for pullqueue."""

from __future__ import annotations

from typing import Any


class QueueError(Exception):
    """Root exception for the pullqueue toolkit.

    Carries a machine-readable ``code``, the ``correlation_id`` of the call
    that failed, and structured ``details``.
    """

    default_code = "QUEUE_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        correlation_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.code = code or self.default_code
        self.correlation_id = correlation_id
        self.details: dict[str, Any] = dict(details or {})
        super().__init__(message)

    def with_details(self, key: str, value: Any) -> QueueError:
        """Attach a detail entry and return self for chaining."""
        self.details[key] = value
        return self


class ConfigurationError(QueueError):
    """Raised when connection or credential parameters are missing or invalid."""

    default_code = "INVALID_CONFIGURATION"


class QueueConnectionError(QueueError):
    """Raised when the backend cannot be reached or provisioning fails."""

    default_code = "CANNOT_ACCESS_QUEUE"


class InvalidStateError(QueueError):
    """Raised when an operation is not allowed in the queue's current state."""

    default_code = "INVALID_STATE"


class MessagingSerializationError(QueueError):
    """Raised when envelope serialization or deserialization fails."""

    default_code = "SERIALIZATION_FAILED"


class UnsupportedOperationError(QueueError):
    """Raised when a queue does not declare the requested capability."""

    default_code = "UNSUPPORTED"

    def __init__(self, capability: str, queue_name: str | None = None) -> None:
        self.capability = capability
        self.queue_name = queue_name
        target = f" by queue {queue_name!r}" if queue_name else ""
        super().__init__(f"Operation {capability!r} is not supported{target}")


class ProcessingError(QueueError):
    """Raised by listen callbacks; the listen loop logs it and keeps polling."""

    default_code = "PROCESSING_FAILED"
