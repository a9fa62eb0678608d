import argparse
import json
import logging
import sys
import threading
from pathlib import Path

import keyboard

from governor.memory_optimizer import MemoryOptimizer
from governor.settings_manager import SettingsManager


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Icon cache and memory governor")
    parser.add_argument('--settings', default='governor_settings.json',
                        help="JSON settings file, created with defaults if missing")
    parser.add_argument('--cache-dir', help="override the icon cache directory")
    parser.add_argument('--stats', action='store_true', help="print memory and cache stats")
    parser.add_argument('--optimize-now', action='store_true', help="run one optimization cycle")
    parser.add_argument('--clear-cache', action='store_true', help="delete every cached icon")
    return parser.parse_args(argv)


def wait_for_exit(logger):
    """Block until ESC or Ctrl+C"""
    stop_event = threading.Event()
    hooked = False
    try:
        keyboard.on_press_key('esc', lambda _: stop_event.set())
        hooked = True
        logger.info("Press 'ESC' to exit...")
    except (ImportError, OSError) as e:
        # keyboard needs root on Linux
        logger.info(f"Keyboard hook unavailable ({e}), press Ctrl+C to exit...")
    try:
        while not stop_event.wait(0.5):
            pass
    except KeyboardInterrupt:
        pass
    finally:
        if hooked:
            keyboard.unhook_all()


def main(argv=None):
    args = parse_args(argv)
    settings_path = Path(args.settings)
    settings = SettingsManager(settings_path).load_settings()
    if args.cache_dir:
        settings['icon_cache_dir'] = args.cache_dir

    logging.basicConfig(level=getattr(logging, str(settings['log_level']).upper(), logging.INFO))
    logger = logging.getLogger('governor')

    optimizer = MemoryOptimizer.from_settings(settings, base_dir=settings_path.parent,
                                              logger=logger)
    cache_dir = optimizer.icon_cache_manager.cache_dir
    if not cache_dir.exists():
        cache_dir.mkdir(parents=True, exist_ok=True)

    if args.clear_cache or args.optimize_now or args.stats:
        if args.clear_cache:
            print(json.dumps(optimizer.clear_icon_cache(), indent=4))
        if args.optimize_now:
            optimizer.memory_monitor.record()
            print(json.dumps(optimizer.optimize(), indent=4))
        if args.stats:
            optimizer.memory_monitor.record()
            print(json.dumps(optimizer.get_stats(), indent=4))
        return 0

    optimizer.start()
    try:
        wait_for_exit(logger)
    finally:
        optimizer.stop()
    logger.info(f"Final stats: {optimizer.get_stats()}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
