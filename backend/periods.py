"""
Billing period arithmetic.

Every period ends at the last instant (23:59:59.999) of a calendar day in the
server's local calendar. Day counting is done on dates, never on elapsed
24-hour spans, so DST changes cannot shift a boundary.
"""
import datetime
import math

from dateutil.relativedelta import relativedelta

from errors import ValidationError

MONTHLY = 'monthly'
DAILY = 'daily'
RENTAL_TYPES = (MONTHLY, DAILY)

END_OF_DAY = datetime.time(23, 59, 59, 999000)


def _as_date(moment):
    if isinstance(moment, datetime.datetime):
        return moment.date()
    return moment


def end_of_day(moment):
    """Final instant of the calendar day containing `moment`."""
    return datetime.datetime.combine(_as_date(moment), END_OF_DAY)


def last_day_of_month(moment):
    # day=31 is clamped by relativedelta to the month's real last day
    return _as_date(moment) + relativedelta(day=31)


def month_end(moment):
    return end_of_day(last_day_of_month(moment))


def next_month_end(moment):
    """End of the last day of the month after the one containing `moment`."""
    return end_of_day(_as_date(moment) + relativedelta(months=1, day=31))


def compute_period_end(rental_type, start_date, number_of_days=None):
    """
    Monthly rentals run through the end of the start date's calendar month.
    Daily rentals count the start date as day 1, so a 1-day rental ends on
    the day it started.
    """
    if start_date is None:
        raise ValidationError("A start date is required to compute a period")

    if rental_type == MONTHLY:
        return month_end(start_date)

    if rental_type == DAILY:
        if number_of_days is None or int(number_of_days) < 1:
            raise ValidationError("Daily rentals need at least one day")
        try:
            last_day = _as_date(start_date) + datetime.timedelta(days=int(number_of_days) - 1)
        except OverflowError:
            raise ValidationError(f"{number_of_days} days is out of range")
        return end_of_day(last_day)

    raise ValidationError(f"Unknown rental type: {rental_type}")


def shift_period_end(end_date, days):
    """Move an existing period end forward by whole calendar days."""
    if end_date is None:
        raise ValidationError("Rental has no end date to extend from")
    try:
        return end_of_day(_as_date(end_date) + datetime.timedelta(days=days))
    except OverflowError:
        raise ValidationError(f"Extending by {days} days is out of range")


def days_until(now, end_date):
    """Whole days (rounded up) from `now` to `end_date`; never negative."""
    seconds = (end_date - now).total_seconds()
    return max(0, math.ceil(seconds / 86400))


def month_window(month, year):
    """First and last instant of a calendar month (month is 1-12)."""
    try:
        month, year = int(month), int(year)
    except (TypeError, ValueError):
        raise ValidationError("Month and year must be numbers")
    if not 1 <= month <= 12:
        raise ValidationError("Month must be between 1 and 12")
    if not datetime.MINYEAR <= year <= datetime.MAXYEAR:
        raise ValidationError("Year is out of range")
    first = datetime.datetime(year, month, 1)
    return first, month_end(first)
