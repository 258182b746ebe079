"""Cancellable repeating timer handles."""
import logging
import threading
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class RepeatingTimer:
    """Calls ``callback`` on a fixed ``interval`` grid on a daemon thread until cancelled."""

    def __init__(self, interval: float, callback: Callable[[], None], name: str = 'timer'):
        """
        Initialize timer handle.

        Args:
            interval: Seconds between calls
            callback: Function to call; exceptions are logged and the timer keeps running
            name: Thread name, for logs
        """
        self.interval = interval
        self.callback = callback
        self.name = name
        self._cancelled = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._cancelled.is_set()

    def start(self):
        """Start the timer."""
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()

    def cancel(self, timeout: float = 5.0):
        """Stop the timer and wait for an in-flight call to finish."""
        self._cancelled.set()
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)

    def _run(self):
        deadline = time.monotonic() + self.interval
        while not self._cancelled.wait(max(0.0, deadline - time.monotonic())):
            try:
                self.callback()
            except Exception:
                logger.exception(f"Timer '{self.name}' callback failed")
            deadline = next_deadline(deadline, self.interval, time.monotonic())


def next_deadline(previous: float, interval: float, now: float) -> float:
    """
    Next call time on the fixed grid ``previous + k * interval``.

    Callback time does not push later calls back. Periods a slow callback
    ran through entirely are skipped rather than fired in a burst.
    """
    deadline = previous + interval
    if deadline < now:
        missed = int((now - deadline) // interval) + 1
        logger.warning(f"Timer fell {missed} period(s) behind; skipping to the next one")
        deadline += missed * interval
    return deadline
