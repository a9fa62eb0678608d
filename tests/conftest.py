"""
Shared fixtures for the governor tests.

- cache_dir: an empty icon cache directory under tmp_path
- clock: a controllable epoch-millisecond clock
- tickers: a ticker factory whose tickers only fire when told to
"""

import pytest


class FakeClock:
    def __init__(self, start=1_700_000_000_000):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms
        return self.now


class ManualTicker:
    def __init__(self, interval_ms, callback, name=None, logger=None):
        self.interval_ms = interval_ms
        self.callback = callback
        self.name = name
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True
        return self

    def cancel(self, timeout=None):
        self.cancelled = True

    def fire(self, times=1):
        for _ in range(times):
            self.callback()


class ManualTickerFactory:
    def __init__(self):
        self.created = []

    def __call__(self, interval_ms, callback, name=None, logger=None):
        ticker = ManualTicker(interval_ms, callback, name=name, logger=logger)
        self.created.append(ticker)
        return ticker

    def by_name(self, name):
        return [t for t in self.created if t.name == name][-1]


@pytest.fixture
def cache_dir(tmp_path):
    path = tmp_path / 'icon-cache'
    path.mkdir()
    return path


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def tickers():
    return ManualTickerFactory()


@pytest.fixture
def write_icon(cache_dir):
    def _write(name, size):
        path = cache_dir / name
        path.write_bytes(b'\0' * size)
        return path
    return _write
