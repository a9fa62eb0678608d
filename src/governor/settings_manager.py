import json
import logging

DEFAULT_SETTINGS = {
    'icon_cache_dir': 'icon-cache',
    'max_cache_size': 50 * 1024 * 1024,
    'cache_target_ratio': 0.8,
    'monitor_interval_ms': 60000,
    'max_measurements': 100,
    'min_leak_samples': 10,
    'leak_policy': 'window',
    'leak_threshold': 1.5,
    'slope_threshold': 0.10,
    'gc_interval_ms': 5 * 60 * 1000,
    'manual_gc_enabled': True,
    'optimize_interval_ms': 10 * 60 * 1000,
    'idle_memory_target_mb': 120,
    'log_samples': False,
    'log_level': 'INFO',
}


class SettingsManager:
    def __init__(self, settings_file, logger=None):
        self.settings_file = settings_file
        self.logger = logger or logging.getLogger(__name__)

    def load_settings(self):
        """Load governor settings from JSON or use defaults"""
        try:
            with open(self.settings_file, 'r') as f:
                stored = json.load(f)
        except FileNotFoundError:
            stored = None
        except (OSError, ValueError) as e:
            self.logger.warning(f"Could not read settings from {self.settings_file}: {e}")
            stored = None

        if not isinstance(stored, dict):
            settings = dict(DEFAULT_SETTINGS)
            self.save_settings(settings)
            return settings

        settings = dict(DEFAULT_SETTINGS)
        settings.update(stored)
        return settings

    def save_settings(self, settings):
        """Save current settings to JSON"""
        try:
            with open(self.settings_file, 'w') as f:
                json.dump(settings, f, indent=4)
        except OSError as e:
            self.logger.warning(f"Could not save settings to {self.settings_file}: {e}")
