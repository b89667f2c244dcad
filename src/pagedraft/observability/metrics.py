"""Metrics hook protocol and no-op default implementation.

pagedraft emits counters and timings at the points where the engine does
real work (merges, store writes, backend requests) and where it tolerates
an anomaly (orphan inserts, canonicalization drift).  By default a
:class:`NoopMetricsHook` is used so there is zero overhead.

Emitted metric names:

* ``pagedraft.merge_total``                  -- counter
* ``pagedraft.merge_duration_ms``            -- timing
* ``pagedraft.orphan_inserts_total``         -- counter
* ``pagedraft.noop_suppressed_total``        -- counter
* ``pagedraft.consistency_warnings_total``   -- counter
* ``pagedraft.store_writes_total``           -- counter
* ``pagedraft.requests_total``               -- counter
* ``pagedraft.request_duration_ms``          -- timing
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class MetricsHook(Protocol):
    """Protocol that any metrics backend must satisfy.

    All methods accept an optional *tags* dict whose keys and values are
    strings.
    """

    def increment(
        self,
        name: str,
        value: int = 1,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Increment a counter metric."""
        ...

    def timing(
        self,
        name: str,
        ms: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Record a duration in milliseconds."""
        ...

    def gauge(
        self,
        name: str,
        value: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Set a gauge metric to an absolute value."""
        ...


class NoopMetricsHook:
    """Default metrics implementation that silently discards all data points."""

    __slots__ = ()

    def increment(
        self,
        name: str,
        value: int = 1,
        tags: dict[str, str] | None = None,
    ) -> None:
        pass

    def timing(
        self,
        name: str,
        ms: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        pass

    def gauge(
        self,
        name: str,
        value: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        pass


def resolve_metrics(config: Any | None) -> MetricsHook:
    """Return the configured metrics hook, or a :class:`NoopMetricsHook`."""
    metrics = getattr(config, "metrics", None)
    return metrics if metrics is not None else NoopMetricsHook()
