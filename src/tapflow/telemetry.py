# Copyright (c) 2025, HaiyangLi <quantocean.li at gmail dot com>
# SPDX-License-Identifier: Apache-2.0

"""Telemetry facade with a vendor-neutral interface for tap observability."""

from __future__ import annotations

from contextlib import contextmanager
from time import perf_counter
from typing import Any, ContextManager, Protocol


class Telemetry(Protocol):
    """Vendor-neutral telemetry interface for metrics and tracing.

    Implementations may forward to OpenTelemetry, Prometheus or any other
    backend without changes to tap code.
    """

    def counter(self, name: str, value: float = 1.0, **labels: Any) -> None:
        """Increment a counter metric.

        Args:
            name: Metric name (e.g., 'tap.fetch.started')
            value: Amount to increment (default: 1.0)
            **labels: Key-value labels for metric dimensions
        """
        ...

    def histogram(self, name: str, value: float, **labels: Any) -> None:
        """Record a value in a histogram metric.

        Args:
            name: Metric name (e.g., 'tap.fetch.duration_s')
            value: Value to record
            **labels: Key-value labels for metric dimensions
        """
        ...

    def gauge(self, name: str, value: float, **labels: Any) -> None:
        """Set a gauge metric to a specific value."""
        ...

    @contextmanager
    def span(self, name: str, **attrs: Any) -> ContextManager[None]:
        """Create a tracing span."""
        ...


class _NoopTelemetry:
    """Default no-op telemetry implementation."""

    def counter(self, name: str, value: float = 1.0, **labels: Any) -> None:
        pass

    def histogram(self, name: str, value: float, **labels: Any) -> None:
        pass

    def gauge(self, name: str, value: float, **labels: Any) -> None:
        pass

    @contextmanager
    def span(self, name: str, **attrs: Any) -> ContextManager[None]:
        yield


# Global telemetry instance - defaults to no-op
_telemetry: Telemetry = _NoopTelemetry()


def set_telemetry(telemetry_impl: Telemetry | None) -> None:
    """Set the global telemetry implementation (``None`` restores the no-op)."""
    global _telemetry
    _telemetry = telemetry_impl if telemetry_impl is not None else _NoopTelemetry()


def get_telemetry() -> Telemetry:
    """Get the current telemetry implementation."""
    return _telemetry


class TelemetryTimer:
    """Context manager recording the duration of a block into a histogram.

    Example:
        with TelemetryTimer('tap.fetch.duration_s', tap='weather'):
            result = await fetch(params, token, state)
    """

    def __init__(self, metric_name: str, **labels: Any):
        self.metric_name = metric_name
        self.labels = labels
        self.start_time: float | None = None

    def __enter__(self) -> TelemetryTimer:
        self.start_time = perf_counter()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self.start_time is not None:
            duration = perf_counter() - self.start_time
            get_telemetry().histogram(self.metric_name, duration, **self.labels)


def timed(metric_name: str, **labels: Any) -> TelemetryTimer:
    """Create a timer context manager for measuring operation duration."""
    return TelemetryTimer(metric_name, **labels)
