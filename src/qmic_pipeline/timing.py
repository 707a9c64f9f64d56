"""Pace the polling loops that wait on the camera."""

import time


class Timer:
    """Periodic timer for polling loops with an optional deadline.

    Polling the camera too often wastes CPU and USB bandwidth, polling too rarely
    lets the on-camera memory fill up. The timer returns from :meth:`wait` once per
    `period`, sleeping for most of it and spinning for the last `max_cpu_buffer`
    seconds to keep the period accurate.
    """

    def __init__(self, period: float, max_cpu_buffer: float = 0.001):
        """Initialize the timer.

        Args:
            period: Time between returns from :meth:`wait` (in seconds).
            max_cpu_buffer: Maximum time to stay in the cpu bound loop at the end
              of each period (in seconds). Defaults to 0.001.
        """
        self.period_ns = period * 1e9
        self.max_cpu_buffer_ns = max_cpu_buffer * 1e9
        self._start_time_ns = None

    def start(self) -> None:
        """Start the timer."""
        self._start_time_ns = time.perf_counter_ns()
        self._next_poll_ns = self._start_time_ns + self.period_ns

    def wait(self) -> None:
        """Block until the next polling period starts.

        If the caller is already late the call returns immediately and the next
        period is scheduled from now, so a slow iteration does not cause a burst
        of back-to-back polls.
        """
        now = time.perf_counter_ns()
        sleep_ns = max((self._next_poll_ns - self.max_cpu_buffer_ns) - now, 0)
        time.sleep(sleep_ns / 1e9)
        while time.perf_counter_ns() < self._next_poll_ns:
            pass
        self._next_poll_ns = max(
            self._next_poll_ns + self.period_ns, now + self.period_ns
        )

    def elapsed(self) -> float:
        """Get the time since the `start` call (in seconds)."""
        return (time.perf_counter_ns() - self._start_time_ns) / 1e9

    def expired(self, timeout: float) -> bool:
        """Check whether at least `timeout` seconds passed since `start`."""
        return self.elapsed() >= timeout


def get_timer(period: float = 0.01, max_cpu_buffer: float = 0.001) -> Timer:
    """Get a started timer.

    Args:
        period: Time between polls (in seconds). Defaults to 0.01.
        max_cpu_buffer: Maximum busy-wait time per period (in seconds).
          Defaults to 0.001.

    Returns:
        A started :class:`Timer`.
    """
    timer = Timer(period, max_cpu_buffer)
    timer.start()
    return timer
