# tests/conftest.py
"""
Shared Test Fixtures - Fakes for Clocks, Sources and Stores

Files that USE this module:
- pytest (fixtures are injected into every test module in tests/)

Files that this module USES:
- bullion.domain.models (PriceSnapshot, Instrument, Currency)
- bullion.adapters.persistence.row_store (InMemoryRowStore)
- bullion.adapters.providers.base (PriceDeriver)
"""
import random
import threading
from datetime import datetime, timedelta, timezone

import pytest

from bullion.adapters.persistence.row_store import InMemoryRowStore
from bullion.adapters.providers.base import PriceDeriver
from bullion.domain.errors import ProviderUnavailableError
from bullion.domain.models import Currency, Instrument, PriceSnapshot

LIVE_PRICES = {
    Instrument.GOLD: 2000.0,
    Instrument.SILVER: 25.0,
    Instrument.PLATINUM: 1000.0,
    Instrument.PALLADIUM: 1300.0,
    Instrument.GOLD_22K: 1833.4,
}

RATIOS = {"silver": 0.0125, "platinum": 0.50, "palladium": 0.65, "gold_22k": 0.9167}
JITTER = {"silver": 0.05, "platinum": 0.05, "palladium": 0.05, "gold_22k": 0.0}


class FakeClock:
    """Manually advanced monotonic clock (seconds)."""

    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeWallClock:
    """Manually advanced UTC wall clock."""

    def __init__(self, start=None):
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeSource:
    """
    Counting PriceSource stand-in.

    With ``block=True`` each fetch signals ``started`` and then waits for
    ``release`` so tests can pile callers onto an in-flight fetch.
    """

    name = "fake"

    def __init__(self, prices=None, fail=False, block=False):
        self.prices = dict(prices or LIVE_PRICES)
        self.fail = fail
        self.block = block
        self.calls = 0
        self.started = threading.Event()
        self.release = threading.Event()
        self._lock = threading.Lock()

    def fetch_base_prices(self, base_currency=Currency.USD):
        with self._lock:
            self.calls += 1
        self.started.set()
        if self.block:
            assert self.release.wait(5), "test never released the fake source"
        if self.fail:
            raise ProviderUnavailableError("upstream down")
        return PriceSnapshot(
            currency=Currency.USD,
            prices=dict(self.prices),
            timestamp=1_700_000_000 + self.calls,
            source="fake",
        )


def make_snapshot(prices=None, currency=Currency.USD, **kwargs):
    return PriceSnapshot(
        currency=currency,
        prices=dict(prices or LIVE_PRICES),
        timestamp=kwargs.pop("timestamp", 1_700_000_000),
        **kwargs,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def wall_clock():
    return FakeWallClock()


@pytest.fixture
def fake_source():
    return FakeSource()


@pytest.fixture
def store():
    return InMemoryRowStore()


@pytest.fixture
def deriver():
    return PriceDeriver(RATIOS, jitter=JITTER, rng=random.Random(42))
