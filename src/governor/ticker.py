import logging
import threading
import time


def now_ms():
    """Current wall-clock time in epoch milliseconds"""
    return int(time.time() * 1000)


class Ticker:
    """Repeating background task.

    Calls ``callback`` every ``interval_ms`` on a single daemon thread, so a
    tick never starts while the previous one is still running. ``cancel()``
    wakes the thread immediately and joins it.
    """

    def __init__(self, interval_ms, callback, name=None, logger=None):
        self.interval_ms = interval_ms
        self.callback = callback
        self.name = name or 'ticker'
        self.logger = logger or logging.getLogger(__name__)
        self._stop_event = threading.Event()
        self._thread = None

    @property
    def active(self):
        return self._thread is not None and not self._stop_event.is_set()

    def start(self):
        """Start ticking; a second call is a no-op"""
        if self._thread is not None:
            return self
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()
        return self

    def cancel(self, timeout=5.0):
        """Stop ticking and wait for the worker thread to exit"""
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def _run(self):
        while not self._stop_event.wait(self.interval_ms / 1000.0):
            try:
                self.callback()
            except Exception:
                # a failed tick must not stop the ticker
                self.logger.exception(f"{self.name}: tick failed")
