"""Configuration for all tests - asyncio backend only."""

from collections import Counter
from contextlib import contextmanager

import anyio
import pytest

from tapflow.telemetry import set_telemetry

# Ensure AnyIO's pytest plugin is loaded explicitly (even if autoload is disabled)
pytest_plugins = ("anyio",)


@pytest.fixture(scope="session")
def anyio_backend():
    """Force tests to run only on asyncio backend."""
    return "asyncio"


class RecordingTelemetry:
    """Telemetry double that counts every metric by name."""

    def __init__(self):
        self.counters = Counter()
        self.histograms = {}
        self.labels = []

    def counter(self, name, value=1.0, **labels):
        self.counters[name] += value
        self.labels.append((name, labels))

    def histogram(self, name, value, **labels):
        self.histograms.setdefault(name, []).append(value)

    def gauge(self, name, value, **labels):
        pass

    @contextmanager
    def span(self, name, **attrs):
        yield


@pytest.fixture
def telemetry():
    recorder = RecordingTelemetry()
    set_telemetry(recorder)
    yield recorder
    set_telemetry(None)


class FakeClock:
    """Manually advanced monotonic clock (seconds)."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance_ms(self, ms: float) -> None:
        self.now += ms / 1000


@pytest.fixture
def clock():
    return FakeClock()


async def _settle(rounds: int = 20) -> None:
    for _ in range(rounds):
        await anyio.sleep(0)


@pytest.fixture
def settle():
    """Let spawned tasks run until they block."""
    return _settle
