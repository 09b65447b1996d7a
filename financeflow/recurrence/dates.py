"""
Date Arithmetic for Recurring Transactions

Calendar-day stepping only; no time-of-day or timezone semantics.
Month and year steps use dateutil's relativedelta, which clamps the
day to the last day of the target month (Jan 31 + 1 month = Feb 29
in a leap year, Feb 29 + 1 year = Feb 28).
"""

from datetime import date, timedelta

from dateutil.relativedelta import relativedelta

from financeflow.models.transaction import Frequency


_STEPS = {
    Frequency.WEEKLY: timedelta(days=7),
    Frequency.MONTHLY: relativedelta(months=1),
    Frequency.YEARLY: relativedelta(years=1),
}


def next_occurrence(current: date, frequency: Frequency) -> date:
    """Return the date one `frequency` step after `current`."""
    return current + _STEPS[Frequency(frequency)]


def occurrence_dates(start: date, frequency: Frequency, until: date) -> list[date]:
    """All dates start, F(start), F(F(start)), ... that are <= until."""
    dates = []
    cursor = start
    while cursor <= until:
        dates.append(cursor)
        cursor = next_occurrence(cursor, frequency)
    return dates
