"""
brb/duration.py

Countdown duration parsing and formatting.

Provides:
- Parsing of CLI time arguments such as "1h", "30m", "15s"
- Summing several arguments into a single duration
- Clock-style formatting of the remaining time
"""

from datetime import timedelta
from typing import Iterable, Tuple


# Time unit multipliers (in seconds)
TIME_UNITS = {
    "h": 3600,
    "m": 60,
    "s": 1,
}


def parse_time_arg(arg: str) -> Tuple[int, str]:
    """
    Parse one time argument.

    Args:
        arg: Amount followed by a unit suffix, e.g. "13h", "5m", "90s".

    Returns:
        Tuple of (amount, unit).

    Raises:
        ValueError: If the unit suffix or the amount is invalid.
    """
    arg = arg.strip()
    if not arg:
        raise ValueError("Time arguments must end with 'h', 'm', or 's' suffix")

    value_str, unit = arg[:-1], arg[-1].lower()

    if unit not in TIME_UNITS:
        raise ValueError("Time arguments must end with 'h', 'm', or 's' suffix")

    if not value_str:
        raise ValueError(f"Missing time amount for '{unit}' time unit")

    if not value_str.isdigit():
        raise ValueError(f"Invalid time amount '{value_str}' for '{unit}' time unit")

    return int(value_str), unit


def total_duration(args: Iterable[str]) -> timedelta:
    """
    Sum time arguments into one duration.

    >>> total_duration(["1h", "2m", "3s"])
    datetime.timedelta(seconds=3723)
    """
    seconds = 0
    for arg in args:
        amount, unit = parse_time_arg(arg)
        seconds += amount * TIME_UNITS[unit]
    return timedelta(seconds=seconds)


def format_clock(remaining: timedelta) -> str:
    """
    Format the remaining time as MM:SS.

    Minutes are not wrapped into hours, so 90 minutes is "90:00".
    Fractions of a second are dropped; negative values show as "00:00".
    """
    total_seconds = max(int(remaining.total_seconds()), 0)
    minutes, seconds = divmod(total_seconds, 60)
    return f"{minutes:02}:{seconds:02}"
