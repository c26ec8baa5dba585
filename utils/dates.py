"""
Billing calendar helpers
"""

from datetime import date, timedelta

from dateutil.relativedelta import relativedelta

from database.models import Periodicity

_PERIOD_OFFSETS = {
    Periodicity.MONTHLY: relativedelta(months=1),
    Periodicity.QUARTERLY: relativedelta(months=3),
    Periodicity.YEARLY: relativedelta(years=1),
}


def today() -> date:
    """Current business day; patched in tests"""
    return date.today()


def add_period(start: date, periodicity: Periodicity) -> date:
    """
    Advance ``start`` by one billing interval

    Month arithmetic clamps to the end of the month (Jan 31 + 1 month is
    the last day of February).
    """
    return start + _PERIOD_OFFSETS[Periodicity(periodicity)]


def next_billing_date(periodicity: Periodicity) -> date:
    return add_period(today(), periodicity)


def period_end_date(start: date, periodicity: Periodicity) -> date:
    """
    Last day (inclusive) of the period that begins on ``start``

    MONTHLY periods end on the last day of the starting month; QUARTERLY
    and YEARLY periods end the day before the same date one interval later.
    """
    periodicity = Periodicity(periodicity)
    if periodicity == Periodicity.MONTHLY:
        return start + relativedelta(day=31)
    return add_period(start, periodicity) - timedelta(days=1)
