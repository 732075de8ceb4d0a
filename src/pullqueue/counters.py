"""Counter sinks for queue activity."""

from __future__ import annotations

from collections import Counter
from typing import Protocol, runtime_checkable


@runtime_checkable
class ICounters(Protocol):
    """Port for named counters (``queue.<name>.sent_messages``, …)."""

    def increment(self, name: str, value: int = 1) -> None:
        """Add *value* to the counter *name*."""
        ...


class NullCounters(ICounters):
    """Discards every increment."""

    def increment(self, name: str, value: int = 1) -> None:  # noqa: ARG002
        return None


class InMemoryCounters(ICounters):
    """Keeps counts in a dict; handy for tests and diagnostics."""

    def __init__(self) -> None:
        self._counts: Counter[str] = Counter()

    def increment(self, name: str, value: int = 1) -> None:
        self._counts[name] += value

    def get(self, name: str) -> int:
        return self._counts[name]

    def snapshot(self) -> dict[str, int]:
        return dict(self._counts)

    def clear(self) -> None:
        self._counts.clear()
