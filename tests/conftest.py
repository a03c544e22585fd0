"""
Shared fixtures for the resilience core tests
"""

import pytest

from wardrobe.common.logger import StructuredLogger
from wardrobe.context import ResilienceContext


class FakeClock:
    """Epoch-ms clock that only moves when told to"""

    def __init__(self, start: float = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class RecordingSleep:
    """Stands in for asyncio.sleep; records requested delays (seconds)"""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)

    @property
    def delays_ms(self) -> list[int]:
        return [round(s * 1000) for s in self.calls]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def flushed():
    """Batches handed to the logger sink"""
    return []


@pytest.fixture
def logger(flushed):
    return StructuredLogger(development=False, sink=flushed.append)


@pytest.fixture
def ctx(logger, clock, sleep):
    return ResilienceContext.create(logger=logger, clock=clock, sleep=sleep)
