"""Statement period helpers."""

from __future__ import annotations

from datetime import date, timedelta

from statement_kernel.exceptions import InvalidPeriodError

# Payout weeks run Tuesday through Monday.
PAYOUT_WEEK_START_WEEKDAY = 1


def validate_period(start: date, end: date) -> None:
    """Raise ``InvalidPeriodError`` when ``start`` is after ``end``."""
    if start > end:
        raise InvalidPeriodError(start.isoformat(), end.isoformat())


def payout_week(day: date) -> tuple[date, date]:
    """The Tuesday-Monday payout week containing ``day``."""
    offset = (day.weekday() - PAYOUT_WEEK_START_WEEKDAY) % 7
    start = day - timedelta(days=offset)
    return start, start + timedelta(days=6)


def previous_payout_week(day: date) -> tuple[date, date]:
    """The payout week before the one containing ``day``.

    Scheduled generation runs on the first day of a payout week and covers
    the week that just ended.
    """
    start, _ = payout_week(day)
    return payout_week(start - timedelta(days=1))
