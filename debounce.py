import logging
import threading
from typing import Callable, Dict, Hashable, List

logger = logging.getLogger(__name__)


class Debouncer:
    """Coalesce rapid calls per key into one call after a quiet interval.

    Scheduling a key again before its interval elapses cancels the
    pending call and restarts the timer with the newest callback.
    """

    def __init__(self, interval: float = 0.4) -> None:
        self.interval = interval
        self._lock = threading.Lock()
        self._timers: Dict[Hashable, threading.Timer] = {}
        self._callbacks: Dict[Hashable, Callable[[], None]] = {}

    def schedule(self, key: Hashable, callback: Callable[[], None]) -> None:
        with self._lock:
            pending = self._timers.pop(key, None)
            if pending is not None:
                pending.cancel()
            timer = threading.Timer(self.interval, self._fire, args=(key,))
            timer.daemon = True
            self._timers[key] = timer
            self._callbacks[key] = callback
            timer.start()
        logger.debug("Scheduled commit for %s in %.3fs", key, self.interval)

    def _fire(self, key: Hashable) -> None:
        with self._lock:
            # a newer schedule replaced this timer
            if self._timers.get(key) is not threading.current_thread():
                return
            del self._timers[key]
            callback = self._callbacks.pop(key, None)
        if callback is not None:
            callback()

    def pending(self) -> List[Hashable]:
        with self._lock:
            return list(self._callbacks)

    def flush(self) -> None:
        """Run every pending callback now."""
        with self._lock:
            for timer in self._timers.values():
                timer.cancel()
            callbacks = list(self._callbacks.values())
            self._timers.clear()
            self._callbacks.clear()
        for callback in callbacks:
            callback()

    def cancel(self) -> None:
        """Drop every pending callback without running it."""
        with self._lock:
            for timer in self._timers.values():
                timer.cancel()
            self._timers.clear()
            self._callbacks.clear()
