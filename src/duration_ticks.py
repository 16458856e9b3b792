"""Conversion of elapsed time into discrete escalation steps."""

from datetime import timedelta


def ticks(elapsed: timedelta | None, interval: int) -> int | None:
    """Count how many whole intervals have passed.

    Args:
        elapsed: Time since the timer started, or None if no timer has started
        interval: Configured interval in seconds (must be positive)

    Returns:
        None if no timer has started, otherwise floor(elapsed / interval).
        Partial progress toward the next interval never counts.

    Raises:
        ValueError: If interval is not positive
    """
    if interval <= 0:
        raise ValueError(f"interval must be positive, got {interval}")
    if elapsed is None:
        return None
    # Clock skew can yield a negative span; treat it as "not yet due"
    seconds = max(elapsed.total_seconds(), 0.0)
    return int(seconds // interval)


def close_threshold(close_timeout: int, ping_interval: int) -> int:
    """Number of ping ticks after which the hard close deadline is reached."""
    return close_timeout // ping_interval
