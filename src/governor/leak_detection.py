"""Leak heuristics evaluated over a window of memory samples.

Each policy exposes ``evaluate(samples)`` and returns a verdict dict with
the same keys, so the monitor can swap policies without changing callers:

    detected     -- True when the trend looks like unbounded growth
    policy       -- policy name
    field        -- sample field the trend was computed on
    growth_ratio -- recent level relative to the older level
    slope        -- least-squares trend in bytes per second
    older_avg    -- mean of the older part of the window
    recent_avg   -- mean of the recent part of the window
    samples      -- number of samples the verdict is based on
"""
import numpy as np


def _series(samples, field):
    times = np.array([s.timestamp for s in samples], dtype=float) / 1000.0
    values = np.array([getattr(s, field) for s in samples], dtype=float)
    return times, values


def _fit(times, values):
    """Least-squares (slope, intercept) with time measured from the first sample"""
    if len(values) < 2 or np.ptp(times) == 0:
        return 0.0, float(np.mean(values)) if len(values) else 0.0
    slope, intercept = np.polyfit(times - times[0], values, 1)
    return float(slope), float(intercept)


def _slope(times, values):
    return _fit(times, values)[0]


def _ratio(recent, older):
    if older > 0:
        return recent / older
    return 1.0 if recent <= 0 else float('inf')


class WindowGrowthPolicy:
    """Compare the mean of the newest samples with the mean of the ones before"""

    name = 'window'

    def __init__(self, recent_count=5, older_count=5, threshold=1.5, field='heap_used'):
        self.recent_count = recent_count
        self.older_count = older_count
        self.threshold = threshold
        self.field = field

    def evaluate(self, samples):
        samples = list(samples)
        times, values = _series(samples, self.field)
        recent = values[-self.recent_count:]
        older = values[-(self.recent_count + self.older_count):-self.recent_count]
        if len(older) == 0:
            older = recent

        recent_avg = float(np.mean(recent))
        older_avg = float(np.mean(older))
        growth_ratio = _ratio(recent_avg, older_avg)

        return {
            'detected': growth_ratio > self.threshold,
            'policy': self.name,
            'field': self.field,
            'growth_ratio': growth_ratio,
            'slope': _slope(times, values),
            'older_avg': older_avg,
            'recent_avg': recent_avg,
            'samples': len(samples),
        }


class LinearTrendPolicy:
    """Fit a line through the whole window and flag sustained growth.

    ``threshold`` is the relative growth of the fitted line from the first
    to the last sample, 0.10 meaning 10%.
    """

    name = 'slope'

    def __init__(self, threshold=0.10, field='rss'):
        self.threshold = threshold
        self.field = field

    def evaluate(self, samples):
        samples = list(samples)
        times, values = _series(samples, self.field)
        slope, start = _fit(times, values)

        half = len(values) // 2
        older_avg = float(np.mean(values[:half])) if half else float(np.mean(values))
        recent_avg = float(np.mean(values[half:]))

        elapsed = float(times[-1] - times[0])
        growth_ratio = _ratio(start + slope * elapsed, start)

        return {
            'detected': slope > 0 and growth_ratio - 1 > self.threshold,
            'policy': self.name,
            'field': self.field,
            'growth_ratio': growth_ratio,
            'slope': slope,
            'older_avg': older_avg,
            'recent_avg': recent_avg,
            'samples': len(samples),
        }


LEAK_POLICIES = {
    WindowGrowthPolicy.name: WindowGrowthPolicy,
    LinearTrendPolicy.name: LinearTrendPolicy,
}


def get_leak_policy(name='window', **options):
    """Build a leak policy by name"""
    try:
        policy_cls = LEAK_POLICIES[name]
    except KeyError:
        raise ValueError(f"Unknown leak policy: {name!r} "
                         f"(expected one of {sorted(LEAK_POLICIES)})") from None
    return policy_cls(**options)
