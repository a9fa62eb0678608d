import logging
import threading
from pathlib import Path

from governor.ticker import now_ms

DEFAULT_MAX_CACHE_SIZE = 50 * 1024 * 1024
MB = 1024 * 1024


class IconCacheManager:
    """Keeps an icon cache directory under a size budget.

    Eviction is least-recently-used: the access time of a file is the last
    ``record_access`` call for its name, or its mtime if it was never
    recorded. Once the budget is exceeded, files are removed oldest first
    until the cache drops to ``target_ratio`` of the budget.
    """

    def __init__(self, cache_dir, max_cache_size=DEFAULT_MAX_CACHE_SIZE,
                 target_ratio=0.8, logger=None, clock=now_ms):
        self.cache_dir = Path(cache_dir)
        self.max_cache_size = max_cache_size
        self.target_ratio = target_ratio
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock
        self.access_log = {}
        self._lock = threading.Lock()

    def record_access(self, filename):
        """Record icon access for LRU tracking"""
        with self._lock:
            self.access_log[filename] = self.clock()

    def get_cache_size(self):
        """Total size in bytes of the files directly inside the cache dir"""
        return sum(size for _, size, _ in self._list_files() or [])

    def get_stats(self):
        files = self._list_files() or []
        with self._lock:
            tracked = len(self.access_log)
        return {
            'size': sum(size for _, size, _ in files),
            'max_size': self.max_cache_size,
            'files': len(files),
            'tracked': tracked,
        }

    def cleanup(self):
        """Remove least recently used icons once the cache exceeds its budget"""
        files = self._list_files()
        if files is None:
            return {'removed': 0, 'freed_bytes': 0}
        self._prune_access_log(files)

        current_size = sum(size for _, size, _ in files)
        if current_size <= self.max_cache_size:
            return {'removed': 0, 'freed_bytes': 0}

        self.logger.info(
            f"Icon cache size ({current_size / MB:.2f}MB) exceeds limit "
            f"({self.max_cache_size / MB:.2f}MB), cleaning up...")

        with self._lock:
            entries = [(self.access_log.get(path.name, mtime), path, size)
                       for path, size, mtime in files]
        # stable sort, so equal access times keep filename order
        entries.sort(key=lambda entry: entry[0])

        target_size = self.max_cache_size * self.target_ratio
        remaining_size = current_size
        removed = 0
        freed_bytes = 0

        for _, path, size in entries:
            if remaining_size <= target_size:
                break
            try:
                path.unlink()
            except FileNotFoundError:
                # already gone, it no longer counts towards the cache size
                remaining_size -= size
                self._forget(path.name)
                continue
            except OSError as e:
                self.logger.warning(f"Failed to delete icon file {path}: {e}")
                continue
            remaining_size -= size
            freed_bytes += size
            removed += 1
            self._forget(path.name)

        self.logger.info(
            f"Icon cache cleanup complete: removed {removed} files, "
            f"freed {freed_bytes / MB:.2f}MB")
        return {'removed': removed, 'freed_bytes': freed_bytes}

    def clear_all(self):
        """Delete every file in the cache directory"""
        files = self._list_files()
        if files is None:
            return {'removed': 0, 'freed_bytes': 0}

        removed = 0
        freed_bytes = 0

        for path, size, _ in files:
            try:
                path.unlink()
            except OSError as e:
                self.logger.warning(f"Failed to delete icon file {path}: {e}")
                continue
            freed_bytes += size
            removed += 1

        with self._lock:
            self.access_log.clear()

        self.logger.info(
            f"Icon cache cleared: removed {removed} files, freed {freed_bytes / MB:.2f}MB")
        return {'removed': removed, 'freed_bytes': freed_bytes}

    def _list_files(self):
        """(path, size, mtime_ms) for every regular file, sorted by name.

        A missing directory is an empty cache; None means it could not be listed.
        """
        try:
            paths = sorted(self.cache_dir.iterdir())
        except FileNotFoundError:
            return []
        except OSError as e:
            self.logger.warning(f"Failed to list icon cache {self.cache_dir}: {e}")
            return None

        files = []
        for path in paths:
            try:
                if not path.is_file():
                    continue
                stats = path.stat()
            except OSError as e:
                self.logger.warning(f"Failed to stat icon file {path}: {e}")
                continue
            files.append((path, stats.st_size, stats.st_mtime_ns // 1_000_000))
        return files

    def _prune_access_log(self, files):
        present = {path.name for path, _, _ in files}
        with self._lock:
            for name in [name for name in self.access_log if name not in present]:
                del self.access_log[name]

    def _forget(self, name):
        with self._lock:
            self.access_log.pop(name, None)
