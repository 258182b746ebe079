"""Tests for the repeating timer handles."""
import threading
import time
from irrigation_engine.scheduler.timers import RepeatingTimer, next_deadline


class TestNextDeadline:
    """Test the fixed call grid."""

    def test_callback_time_does_not_shift_grid(self):
        """Test that a call finishing late in its period keeps the next slot."""
        assert next_deadline(100.0, 60.0, 130.0) == 160.0
        assert next_deadline(100.0, 60.0, 159.9) == 160.0

    def test_overrun_skips_missed_periods(self):
        """Test that a callback running past whole periods resumes on the grid."""
        assert next_deadline(100.0, 60.0, 170.0) == 220.0
        assert next_deadline(100.0, 60.0, 281.0) == 340.0


class TestRepeatingTimer:
    """Test the daemon-thread timer."""

    def test_slow_callback_does_not_drift(self):
        """Test that call times follow the interval, not interval plus callback time."""
        calls = []
        done = threading.Event()

        def slow():
            calls.append(time.monotonic())
            if len(calls) == 5:
                done.set()
            time.sleep(0.1)

        timer = RepeatingTimer(0.15, slow, name='test-slow')
        timer.start()
        assert done.wait(timeout=5)
        timer.cancel()

        # Drifting calls would be 4 x 0.25 s apart
        assert calls[4] - calls[0] < 0.85

    def test_callback_error_keeps_timer_running(self):
        """Test that an exception is logged and the next call still happens."""
        done = threading.Event()
        attempts = []

        def flaky():
            attempts.append(1)
            if len(attempts) == 1:
                raise RuntimeError('store hiccup')
            done.set()

        timer = RepeatingTimer(0.01, flaky, name='test-flaky')
        timer.start()
        assert done.wait(timeout=5)
        timer.cancel()
        assert not timer.is_running
