"""
Helpers for reading monotonically increasing counters and percentages.
"""


def counter_delta(previous: int, current: int) -> int:
    """
    Difference between two readings of a monotonic counter.

    A decrease means the counter wrapped or the host rebooted; the current
    reading is then taken as the growth since the reset.
    """
    delta = current - previous
    if delta < 0:
        return current
    return delta


def counter_rate(previous: int, current: int, elapsed_seconds: float) -> float:
    """Per-second rate between two counter readings."""
    if elapsed_seconds <= 0:
        return 0.0
    return counter_delta(previous, current) / elapsed_seconds


def clamp_percent(value: float) -> float:
    """Clamp a reported percentage into [0, 100] for display."""
    return max(0.0, min(100.0, value))
