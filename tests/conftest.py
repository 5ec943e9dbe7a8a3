"""
Shared fixtures.
"""

import pytest


class FakeClock:
    """Manually advanced monotonic clock (seconds)."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance_ms(self, ms: float):
        self.now += ms / 1000.0


@pytest.fixture
def clock():
    return FakeClock()
