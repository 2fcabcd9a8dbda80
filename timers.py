"""
Cancellable periodic tasks owned by a game session.

A session starts a task when it enters the state that needs it (countdown, elapsed-time poll,
rapid-fire clock) and cancels it when it leaves that state or is aborted. Sessions accept any
`scheduler(interval, callback, name)` returning an object with `cancel()`, so tests and the
web app can drive them without background threads.
"""

import logging
import threading
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)


class PeriodicTask:
    def __init__(self, interval: float, callback: Callable[[], None], name: Optional[str] = None):
        self.interval = interval
        self.callback = callback
        self.name = name or "periodic-task"
        self._stopped = threading.Event()
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)

    def start(self) -> "PeriodicTask":
        self._thread.start()
        return self

    def _run(self):
        while not self._stopped.wait(self.interval):
            try:
                self.callback()
            except Exception:
                # keep ticking; a failing tick must not kill the session clock
                logger.exception("Periodic task %s failed", self.name)

    def cancel(self) -> None:
        self._stopped.set()

    @property
    def cancelled(self) -> bool:
        return self._stopped.is_set()


def start_periodic(interval: float, callback: Callable[[], None], name: Optional[str] = None) -> PeriodicTask:
    return PeriodicTask(interval, callback, name).start()


class _IdleTask:
    def __init__(self):
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


def no_background(interval: float, callback: Callable[[], None], name: Optional[str] = None) -> _IdleTask:
    """Scheduler that never fires; the owner advances on events only."""
    return _IdleTask()


class TimerOwner:
    """Bookkeeping for the named periodic tasks a session machine holds."""

    def __init__(self, scheduler=start_periodic):
        self._scheduler = scheduler or no_background
        self._timers: Dict[str, object] = {}
        # guards the owner's state; timer callbacks and request threads both take it
        self._lock = threading.RLock()

    def _start_timer(self, name: str, interval: float, callback: Callable[[], None]) -> None:
        self._cancel_timer(name)
        self._timers[name] = self._scheduler(interval, callback, name)

    def _cancel_timer(self, name: str) -> None:
        task = self._timers.pop(name, None)
        if task is not None:
            task.cancel()

    def _cancel_all_timers(self) -> None:
        for name in list(self._timers):
            self._cancel_timer(name)

    def release(self) -> None:
        """Stop every timer; called when the owner is dropped."""
        with self._lock:
            self._cancel_all_timers()

    @property
    def active_timers(self):
        return sorted(self._timers)
