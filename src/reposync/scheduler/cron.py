"""Five-field cron expression matching and missed-run detection.

Fields are minute, hour, day of month, month and day of week (0 = Sunday).
Each field is one of::

    *       always matches
    */N     matches when value % N == 0
    a,b,c   matches any listed integer
    A-B     matches A <= value <= B
    N       matches exactly N

Expressions are evaluated against wall-clock fields of the datetime given,
which is local time unless the caller passes something else.
"""

from datetime import datetime, timedelta
from typing import Optional


def _check_field(value: int, pattern: str) -> bool:
    if pattern == "*":
        return True

    try:
        if pattern.startswith("*/"):
            step = int(pattern[2:])
            return step > 0 and value % step == 0

        if "," in pattern:
            allowed = set()
            for item in pattern.split(","):
                try:
                    allowed.add(int(item))
                except ValueError:
                    continue
            return value in allowed

        if "-" in pattern:
            start, end = pattern.split("-", 1)
            return int(start) <= value <= int(end)

        return int(pattern) == value
    except ValueError:
        return False


def is_valid(expression: str) -> bool:
    """Whether ``expression`` has the five fields a cron expression needs."""
    return len((expression or "").split()) == 5


def matches(expression: str, when: datetime) -> bool:
    """Check whether ``expression`` fires at the minute of ``when``.

    A malformed expression never matches.
    """
    fields = (expression or "").split()
    if len(fields) != 5:
        return False

    minute, hour, day, month, weekday = fields
    return (
        _check_field(when.minute, minute)
        and _check_field(when.hour, hour)
        and _check_field(when.day, day)
        and _check_field(when.month, month)
        and _check_field((when.weekday() + 1) % 7, weekday)
    )


def _aware(when: datetime) -> datetime:
    # Naive datetimes are taken as local time
    return when if when.tzinfo is not None else when.astimezone()


def should_have_run_since(
    expression: str,
    last_run: datetime,
    now: Optional[datetime] = None,
    max_lookback_days: int = 31
) -> bool:
    """Check whether ``expression`` fired after ``last_run`` and up to ``now``.

    Walks backward from the minute-aligned ``now`` one minute at a time,
    never further back than ``max_lookback_days``.

    Examples:
        >>> now = datetime(2024, 5, 6, 12, 10)
        >>> should_have_run_since("0 * * * *", now - timedelta(hours=3), now)
        True
        >>> should_have_run_since("0 * * * *", now - timedelta(seconds=30), now)
        False
    """
    now = _aware(now or datetime.now().astimezone())
    last_run = _aware(last_run)

    if last_run >= now:
        return False

    one_minute = timedelta(minutes=1)
    check = now.replace(second=0, microsecond=0)
    limit = max(last_run, now - timedelta(days=max_lookback_days))

    while check > limit:
        if check > last_run and matches(expression, check):
            return True
        check -= one_minute

    return False
