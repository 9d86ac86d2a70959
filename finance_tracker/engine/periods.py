"""
Period Calculator

Maps a period type and a reference date to the canonical calendar range the
period covers. All ranges are inclusive on both ends and carry no time
component.

Quarters are fixed calendar quarters (Jan-Mar, Apr-Jun, Jul-Sep, Oct-Dec),
so a quarter never spans two years.
"""

import calendar
from datetime import date
from typing import NamedTuple

from finance_tracker.models.finance import PeriodType, RecurrenceFrequency


HALF_MONTH_SPLIT_DAY = 15


class PeriodRange(NamedTuple):
    """Inclusive [start, end] date range."""
    start: date
    end: date

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end


class HalfMonth(NamedTuple):
    """One quincena: its period type and range."""
    period_type: PeriodType
    range: PeriodRange


def last_day_of_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def quarter_start_month(month: int) -> int:
    return 3 * ((month - 1) // 3) + 1


def compute_period(period_type: PeriodType, reference_date: date) -> PeriodRange:
    """
    Canonical range of the period of `period_type` containing `reference_date`.

    Examples:
        compute_period(PeriodType.HALF_MONTH_2, date(2024, 2, 3))
            -> 2024-02-16 .. 2024-02-29
        compute_period(PeriodType.QUARTERLY, date(2024, 11, 20))
            -> 2024-10-01 .. 2024-12-31
    """
    period_type = PeriodType(period_type)
    year, month = reference_date.year, reference_date.month
    month_end = last_day_of_month(year, month)

    if period_type == PeriodType.HALF_MONTH_1:
        return PeriodRange(date(year, month, 1), date(year, month, HALF_MONTH_SPLIT_DAY))
    if period_type == PeriodType.HALF_MONTH_2:
        return PeriodRange(date(year, month, HALF_MONTH_SPLIT_DAY + 1), date(year, month, month_end))
    if period_type == PeriodType.MONTHLY:
        return PeriodRange(date(year, month, 1), date(year, month, month_end))
    if period_type == PeriodType.QUARTERLY:
        first = quarter_start_month(month)
        last = first + 2
        return PeriodRange(
            date(year, first, 1),
            date(year, last, last_day_of_month(year, last)),
        )
    # YEARLY
    return PeriodRange(date(year, 1, 1), date(year, 12, 31))


def half_month_type_for(day: date) -> PeriodType:
    """Which half of its month a day falls in."""
    if day.day <= HALF_MONTH_SPLIT_DAY:
        return PeriodType.HALF_MONTH_1
    return PeriodType.HALF_MONTH_2


def half_month_periods(year: int, month: int) -> list[HalfMonth]:
    """The two quincenas of a month, in order."""
    reference = date(year, month, 1)
    return [
        HalfMonth(period_type, compute_period(period_type, reference))
        for period_type in (PeriodType.HALF_MONTH_1, PeriodType.HALF_MONTH_2)
    ]


def months_in_period(period_type: PeriodType, reference_date: date) -> list[tuple[int, int]]:
    """(year, month) pairs spanned by the period containing `reference_date`."""
    period = compute_period(period_type, reference_date)
    months = []
    year, month = period.start.year, period.start.month
    while (year, month) <= (period.end.year, period.end.month):
        months.append((year, month))
        year, month = (year + 1, 1) if month == 12 else (year, month + 1)
    return months


def split_into_half_months(period_type: PeriodType, reference_date: date) -> list[HalfMonth]:
    """
    Every quincena composing the period containing `reference_date`.

    A half-month period is its own single sub-period.
    """
    period_type = PeriodType(period_type)
    if period_type.is_half_month:
        return [HalfMonth(period_type, compute_period(period_type, reference_date))]
    return [
        half
        for year, month in months_in_period(period_type, reference_date)
        for half in half_month_periods(year, month)
    ]


def add_months(day: date, months: int) -> date:
    """Shift a date by whole months, clamping the day to the target month's end."""
    index = day.year * 12 + (day.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    return date(year, month, min(day.day, last_day_of_month(year, month)))


def next_occurrence(
    period_type: PeriodType,
    start: date,
    end: date,
    frequency: RecurrenceFrequency,
) -> PeriodRange:
    """
    The range a recurring budget covers one recurrence step later.

    Canonical ranges stay canonical: a monthly budget for January 1-31
    recurs as February 1-28/29, not February 1-28 then March 1-28.
    Non-canonical ranges have both ends shifted by the step, clamped to
    month ends.
    """
    step = RecurrenceFrequency(frequency).months
    new_start = add_months(start, step)

    if compute_period(period_type, start) == PeriodRange(start, end):
        candidate = compute_period(period_type, new_start)
        if candidate.start == new_start:
            return candidate

    new_end = add_months(end, step)
    if new_end <= new_start:
        # both ends clamped onto the same month end
        new_end = new_start + (end - start)
    return PeriodRange(new_start, new_end)
