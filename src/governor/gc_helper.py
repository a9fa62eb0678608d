import gc
import logging

from governor.memory_monitor import read_memory_usage
from governor.ticker import now_ms

DEFAULT_GC_INTERVAL_MS = 5 * 60 * 1000
MB = 1024 * 1024


def read_heap_used():
    return read_memory_usage()[0]


class GCHelper:
    """Rate limited manual garbage collection.

    ``collect`` is the manual collection hook; pass ``None`` when manual GC
    is disabled, in which case every request returns None.
    """

    def __init__(self, gc_interval_ms=DEFAULT_GC_INTERVAL_MS, collect=gc.collect,
                 read_heap_used=read_heap_used, logger=None, clock=now_ms):
        self.gc_interval_ms = gc_interval_ms
        self.collect = collect
        self.read_heap_used = read_heap_used
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock
        self.last_gc = clock()
        self._warned_unavailable = False

    @property
    def available(self):
        return self.collect is not None

    def request_gc(self):
        """Run the collection hook and report how much heap it freed"""
        if not self.available:
            if not self._warned_unavailable:
                self.logger.info("Manual GC disabled, skipping collection requests")
                self._warned_unavailable = True
            return None

        try:
            before = self.read_heap_used()
            collected = self.collect()
            after = self.read_heap_used()
        except Exception:
            # injected hooks may raise anything
            self.logger.exception("GC request failed")
            return None

        freed = before - after
        self.logger.info(f"GC completed: freed {freed / MB:.2f}MB")
        return {'freed': freed, 'before': before, 'after': after, 'collected': collected}

    def request_gc_if_needed(self):
        """Request GC once gc_interval_ms has passed since the last request"""
        now = self.clock()
        if now - self.last_gc < self.gc_interval_ms:
            return None
        self.last_gc = now
        return self.request_gc()
