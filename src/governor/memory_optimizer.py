import gc
import logging
import threading
from pathlib import Path

from governor.gc_helper import DEFAULT_GC_INTERVAL_MS, GCHelper
from governor.icon_cache_manager import DEFAULT_MAX_CACHE_SIZE, IconCacheManager
from governor.leak_detection import get_leak_policy
from governor.memory_monitor import MemoryMonitor
from governor.ticker import Ticker, now_ms

DEFAULT_OPTIMIZE_INTERVAL_MS = 10 * 60 * 1000
MB = 1024 * 1024

# each leak policy reads its threshold from its own settings key
POLICY_THRESHOLD_KEYS = {
    'window': 'leak_threshold',
    'slope': 'slope_threshold',
}


class MemoryOptimizer:
    """Runs icon cache cleanup, throttled GC and leak checks on one schedule.

    The optimizer is Stopped until ``start()`` and Running until ``stop()``.
    While running, the memory monitor samples on its own interval and
    ``optimize()`` fires every ``optimize_interval_ms``. ``optimize()`` can
    also be called directly in either state.
    """

    def __init__(self, icon_cache_path, max_cache_size=DEFAULT_MAX_CACHE_SIZE,
                 monitor_interval_ms=60000, gc_interval_ms=DEFAULT_GC_INTERVAL_MS,
                 max_measurements=100, optimize_interval_ms=DEFAULT_OPTIMIZE_INTERVAL_MS,
                 cache_target_ratio=0.8, min_leak_samples=10, leak_policy=None,
                 collect=gc.collect, idle_memory_target_mb=120, log_samples=False,
                 logger=None, clock=now_ms, ticker_factory=Ticker):
        self.logger = logger or logging.getLogger(__name__)
        self.optimize_interval_ms = optimize_interval_ms
        self.idle_memory_target_mb = idle_memory_target_mb
        self.ticker_factory = ticker_factory

        self.icon_cache_manager = IconCacheManager(
            icon_cache_path, max_cache_size, target_ratio=cache_target_ratio,
            logger=self.logger, clock=clock)
        self.memory_monitor = MemoryMonitor(
            monitor_interval_ms, max_measurements, min_samples=min_leak_samples,
            leak_policy=leak_policy, logger=self.logger, clock=clock,
            ticker_factory=ticker_factory, log_samples=log_samples)
        self.gc_helper = GCHelper(gc_interval_ms, collect=collect, logger=self.logger,
                                  clock=clock)

        self.optimization_timer = None
        self._cycle_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings, base_dir=None, **kwargs):
        """Build an optimizer from a settings dict (see SettingsManager)"""
        cache_dir = Path(settings['icon_cache_dir'])
        if base_dir is not None and not cache_dir.is_absolute():
            cache_dir = Path(base_dir) / cache_dir

        policy_name = settings.get('leak_policy', 'window')
        policy_options = {}
        threshold_key = POLICY_THRESHOLD_KEYS.get(policy_name)
        if threshold_key in settings:
            policy_options['threshold'] = settings[threshold_key]
        leak_policy = get_leak_policy(policy_name, **policy_options)

        if not settings.get('manual_gc_enabled', True):
            kwargs.setdefault('collect', None)

        return cls(
            cache_dir,
            max_cache_size=settings['max_cache_size'],
            monitor_interval_ms=settings['monitor_interval_ms'],
            gc_interval_ms=settings['gc_interval_ms'],
            max_measurements=settings['max_measurements'],
            optimize_interval_ms=settings['optimize_interval_ms'],
            cache_target_ratio=settings.get('cache_target_ratio', 0.8),
            min_leak_samples=settings.get('min_leak_samples', 10),
            leak_policy=leak_policy,
            idle_memory_target_mb=settings.get('idle_memory_target_mb', 120),
            log_samples=settings.get('log_samples', False),
            **kwargs)

    @property
    def running(self):
        return self.optimization_timer is not None

    def start(self):
        """Start memory optimization"""
        if self.optimization_timer is not None:
            return

        self.logger.info("Memory optimization started")
        self.memory_monitor.start()
        self.optimization_timer = self.ticker_factory(
            self.optimize_interval_ms, self.optimize, name='memory-optimizer',
            logger=self.logger)
        self.optimization_timer.start()

    def stop(self):
        """Stop memory optimization"""
        if self.optimization_timer is not None:
            self.optimization_timer.cancel()
            self.optimization_timer = None
            self.logger.info("Memory optimization stopped")
        self.memory_monitor.stop()

    def optimize(self):
        """Run one optimization cycle"""
        with self._cycle_lock:
            self.logger.debug("Running memory optimization cycle...")
            cache_result = self.icon_cache_manager.cleanup()
            gc_result = self.gc_helper.request_gc_if_needed()
            leak_check = self.memory_monitor.check_for_leaks()

        return {
            'icon_cache': cache_result,
            'gc': gc_result,
            'leak': leak_check,
        }

    def get_stats(self):
        memory = self.memory_monitor.get_stats()
        if memory is not None:
            memory['over_target'] = memory['current']['rss'] > self.idle_memory_target_mb * MB
        return {
            'memory': memory,
            'icon_cache': {
                'size': self.icon_cache_manager.get_cache_size(),
                'max_size': self.icon_cache_manager.max_cache_size,
            },
        }

    def record_icon_access(self, icon_file_name):
        self.icon_cache_manager.record_access(icon_file_name)

    def clear_icon_cache(self):
        """Delete every cached icon"""
        with self._cycle_lock:
            return self.icon_cache_manager.clear_all()
