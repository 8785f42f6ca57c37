"""Derive live remaining time from a stored timer and the wall clock."""

import time

from .models import Timer


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def compute_remaining(timer: Timer, now: int) -> int:
    """Seconds left on ``timer`` at ``now`` (epoch ms).

    Inactive timers return their frozen snapshot. Active timers count down
    from ``duration`` since ``start_time``; a clock that moved backwards
    counts as zero elapsed.
    """
    if not timer.is_active:
        return timer.remaining_time

    elapsed = max(0, (now - timer.start_time) // 1000)
    return max(0, timer.duration - elapsed)


def is_due(timer: Timer, now: int) -> bool:
    """True when a running timer has reached zero and has not yet alerted."""
    return (
        timer.is_active
        and not timer.is_notification_mode
        and compute_remaining(timer, now) == 0
    )
