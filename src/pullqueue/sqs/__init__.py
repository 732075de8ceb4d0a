"""Amazon SQS backend for pullqueue."""

from __future__ import annotations

from .connection import SQSConnectionManager
from .queue import SQSMessageQueue

__all__ = [
    "SQSConnectionManager",
    "SQSMessageQueue",
]
