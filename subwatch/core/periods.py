"""
Usage window boundaries.

Two windows coexist and are deliberately different:

- the scoring period reaches back one calendar month (month component
  minus one, day and time of day kept);
- the waste window reaches back a fixed 30 days.

Near month boundaries the two can disagree, so callers must not
substitute one for the other.
"""

from datetime import datetime, timedelta

WASTE_WINDOW_DAYS = 30


def one_calendar_month_before(now: datetime) -> datetime:
    """Return ``now`` with its month component decremented by one.

    Day of month and time of day are kept. When that day does not exist in
    the previous month, the surplus days roll over into the following
    month, e.g. 2025-03-31 becomes 2025-03-03 and 2024-03-30 becomes
    2024-03-01.

    The result is not clamped to anything; it may predate the
    subscription it is used for.
    """
    year, month = now.year, now.month - 1
    if month == 0:
        year, month = year - 1, 12
    first_of_month = now.replace(year=year, month=month, day=1)
    return first_of_month + timedelta(days=now.day - 1)


def scoring_period_start(now: datetime) -> datetime:
    """Start of the window used to count usage for value scoring."""
    return one_calendar_month_before(now)


def waste_window_start(now: datetime) -> datetime:
    """Start of the fixed window used for dashboard waste detection."""
    return now - timedelta(days=WASTE_WINDOW_DAYS)
