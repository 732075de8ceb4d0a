"""Pull-based message queues with lease locking and dead-letter routing."""

from __future__ import annotations

from .capabilities import MessagingCapabilities
from .config import (
    AwsConnectionParams,
    ConnectionParams,
    CredentialParams,
    QueueOptions,
)
from .counters import ICounters, InMemoryCounters, NullCounters
from .envelope import MessageEnvelope, MessageReference
from .exceptions import (
    ConfigurationError,
    InvalidStateError,
    MessagingSerializationError,
    ProcessingError,
    QueueConnectionError,
    QueueError,
    UnsupportedOperationError,
)
from .queue import ListenerHandle, ListenerState, MessageQueue
from .serialization import EnvelopeSerializer

__all__ = [
    "AwsConnectionParams",
    "ConfigurationError",
    "ConnectionParams",
    "CredentialParams",
    "EnvelopeSerializer",
    "ICounters",
    "InMemoryCounters",
    "InvalidStateError",
    "ListenerHandle",
    "ListenerState",
    "MessageEnvelope",
    "MessageQueue",
    "MessageReference",
    "MessagingCapabilities",
    "MessagingSerializationError",
    "NullCounters",
    "ProcessingError",
    "QueueConnectionError",
    "QueueError",
    "QueueOptions",
    "UnsupportedOperationError",
]
