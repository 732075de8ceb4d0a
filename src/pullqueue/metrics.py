"""PrometheusCounters — ICounters backed by prometheus_client ([prometheus] extra).

Emits ``pullqueue_counter_total{name}`` where *name* is the queue counter,
e.g. ``queue.orders.sent_messages``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from prometheus_client import Counter

from .counters import ICounters

if TYPE_CHECKING:
    from prometheus_client import CollectorRegistry

_logger = logging.getLogger(__name__)


class PrometheusCounters(ICounters):
    """Forwards queue counters to a single labelled Prometheus counter."""

    def __init__(
        self,
        metric_name: str = "pullqueue_counter",
        *,
        registry: CollectorRegistry | None = None,
    ) -> None:
        kwargs = {"registry": registry} if registry is not None else {}
        self._counter = Counter(
            metric_name,
            "Queue activity counters",
            ["name"],
            **kwargs,
        )

    def increment(self, name: str, value: int = 1) -> None:
        try:
            self._counter.labels(name=name).inc(value)
        except Exception:  # noqa: BLE001
            _logger.debug("Failed to emit counter %s", name, exc_info=True)
