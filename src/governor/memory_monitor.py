import logging
import threading
import tracemalloc
from collections import deque
from dataclasses import asdict, dataclass, fields

import numpy as np
import psutil

from governor.leak_detection import WindowGrowthPolicy
from governor.ticker import Ticker, now_ms

MB = 1024 * 1024


@dataclass(frozen=True)
class MemorySample:
    timestamp: int
    heap_used: int
    heap_total: int
    external: int
    rss: int

    def to_dict(self):
        return asdict(self)


SAMPLE_FIELDS = tuple(f.name for f in fields(MemorySample) if f.name != 'timestamp')


def read_memory_usage(process=None):
    """(heap_used, heap_total, external, rss) for the given or current process.

    heap_used is the Python allocator's traced size while tracemalloc is
    tracing, otherwise it falls back to rss. heap_total is the virtual size.
    """
    info = (process or psutil.Process()).memory_info()
    rss = info.rss
    if tracemalloc.is_tracing():
        heap_used = tracemalloc.get_traced_memory()[0]
    else:
        heap_used = rss
    return heap_used, info.vms, max(rss - heap_used, 0), rss


class MemoryMonitor:
    """Samples process memory on an interval and keeps the most recent samples"""

    def __init__(self, interval_ms=60000, max_measurements=100, min_samples=10,
                 leak_policy=None, logger=None, clock=now_ms, ticker_factory=Ticker,
                 log_samples=False):
        self.interval_ms = interval_ms
        self.max_measurements = max_measurements
        self.min_samples = max(1, min_samples)
        self.leak_policy = leak_policy or WindowGrowthPolicy()
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock
        self.ticker_factory = ticker_factory
        self.log_samples = log_samples
        self.timer = None
        self._measurements = deque(maxlen=max_measurements)
        self._lock = threading.RLock()
        self._process = None

    @property
    def measurements(self):
        with self._lock:
            return list(self._measurements)

    @property
    def running(self):
        return self.timer is not None

    def get_memory_usage(self):
        """Take a memory snapshot of this process"""
        try:
            if self._process is None:
                self._process = psutil.Process()
            heap_used, heap_total, external, rss = read_memory_usage(self._process)
        except (psutil.Error, OSError) as e:
            self.logger.warning(f"Failed to read process memory: {e}")
            heap_used = heap_total = external = rss = 0
        return MemorySample(self.clock(), heap_used, heap_total, external, rss)

    def record(self, sample=None):
        """Append a sample to the window, taking one if none is given"""
        sample = sample or self.get_memory_usage()
        with self._lock:
            self._measurements.append(sample)
        return sample

    def start(self):
        """Start monitoring"""
        if self.timer is not None:
            return

        self.logger.info("Memory monitoring started")
        self.record()
        self.timer = self.ticker_factory(self.interval_ms, self._tick, name='memory-monitor',
                                         logger=self.logger)
        self.timer.start()

    def stop(self):
        """Stop monitoring"""
        if self.timer is None:
            return
        self.timer.cancel()
        self.timer = None
        self.logger.info("Memory monitoring stopped")

    def clear(self):
        with self._lock:
            self._measurements.clear()

    def _tick(self):
        usage = self.record()
        self.check_for_leaks()
        if self.log_samples:
            self.logger.debug(f"Memory: {usage.heap_used / MB:.2f}MB heap, {usage.rss / MB:.2f}MB RSS")

    def check_for_leaks(self):
        """Run the leak policy over the window, None until there is enough data"""
        samples = self.measurements
        if len(samples) < self.min_samples:
            return None

        verdict = self.leak_policy.evaluate(samples)
        if verdict['detected']:
            self.logger.warning(
                f"Potential memory leak detected: {(verdict['growth_ratio'] - 1) * 100:.1f}% growth "
                f"in {verdict['field']} (older average {verdict['older_avg'] / MB:.2f}MB, "
                f"recent average {verdict['recent_avg'] / MB:.2f}MB)")
        return verdict

    def get_stats(self):
        """Latest, mean and peak values over the window"""
        samples = self.measurements
        if not samples:
            return None

        values = np.array([[getattr(s, name) for name in SAMPLE_FIELDS] for s in samples],
                          dtype=float)
        average = values.mean(axis=0)
        peak = values.max(axis=0)

        return {
            'current': samples[-1].to_dict(),
            'average': {name: float(v) for name, v in zip(SAMPLE_FIELDS, average)},
            'peak': {name: int(v) for name, v in zip(SAMPLE_FIELDS, peak)},
            'measurements': len(samples),
        }
