"""
Rent Proration (Domain Logic).

Converts a weekly per-person rent (PPPW) into calendar-month (PCM) amounts,
and explains an amount due as the calendar months it pays for.

Pure functions only: no I/O, no database access.
All money is handled as Decimal and rounded half-up to the penny.
"""

import calendar
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

PENNY = Decimal("0.01")
WEEKS_PER_YEAR = Decimal(52)
MONTHS_PER_YEAR = Decimal(12)
DAYS_PER_WEEK = Decimal(7)

# An amount within 50p of the monthly rate is a full month (absorbs upstream rounding).
FULL_MONTH_TOLERANCE = Decimal("0.50")
# 1.5 months or more is a multi-month span (quarterly, upfront, rolling first payment).
MULTI_MONTH_THRESHOLD = Decimal("1.5")
# Average month length, used only for the per-day display rate of a full month.
AVERAGE_DAYS_PER_MONTH = Decimal("30.4375")
# Remaining amount at or below a penny is fully reconciled.
RECONCILIATION_EPSILON = Decimal("0.01")
MAX_BREAKDOWN_MONTHS = 12
# Rolling tenancies have no end date; walk against 31 Dec this many years ahead.
OPEN_ENDED_HORIZON_YEARS = 10

CALCULATION_METHOD = "calendar_month"

# Embedded in the description of a rolling first payment that covers a
# partial start month plus the following full month.
ROLLING_FIRST_PAYMENT_MARKER = "(partial) &"


def is_rolling_first_with_partial(description: Optional[str]) -> bool:
    return bool(description) and ROLLING_FIRST_PAYMENT_MARKER in description


def as_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def to_money(value) -> Decimal:
    return as_decimal(value).quantize(PENNY, rounding=ROUND_HALF_UP)


def round_half_up(value) -> int:
    return int(as_decimal(value).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def calendar_month_rate(pppw) -> Decimal:
    """PCM rate: (weekly rent x 52) / 12, unrounded."""
    return as_decimal(pppw) * WEEKS_PER_YEAR / MONTHS_PER_YEAR


def daily_rate(pppw) -> Decimal:
    return as_decimal(pppw) / DAYS_PER_WEEK


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def month_start(day: date) -> date:
    return day.replace(day=1)


def month_end(day: date) -> date:
    return day.replace(day=days_in_month(day.year, day.month))


def next_month_start(day: date) -> date:
    if day.month == 12:
        return date(day.year + 1, 1, 1)
    return date(day.year, day.month + 1, 1)


def add_months(day: date, months: int) -> date:
    """First day of the month ``months`` after ``day``'s month."""
    index = day.year * 12 + (day.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def days_between(start: date, end: date) -> int:
    """Inclusive day count; the start day counts."""
    return (end - start).days + 1


def month_label(day: date) -> str:
    return day.strftime("%B %Y")


@dataclass(frozen=True)
class RentAmount:
    days: int
    amount: Decimal


ZERO_RENT = RentAmount(days=0, amount=Decimal("0.00"))


def rent_for_days(days: int, pppw, full_month_days: int) -> Decimal:
    """
    Rent for ``days`` within a calendar month of ``full_month_days`` days.

    A whole month is charged at the monthly rate; a part month pays
    (days / days in month) x monthly rate.
    """
    monthly = calendar_month_rate(pppw)
    if days == full_month_days:
        return to_money(monthly)
    return to_money(Decimal(days) / Decimal(full_month_days) * monthly)


def month_rent(year: int, month: int, tenancy_start: date, tenancy_end: date, pppw) -> RentAmount:
    """Rent for one calendar month, clipped to the tenancy dates."""
    first = date(year, month, 1)
    last = month_end(first)
    effective_start = max(first, tenancy_start)
    effective_end = min(last, tenancy_end)
    if effective_start > effective_end:
        return ZERO_RENT
    days = days_between(effective_start, effective_end)
    return RentAmount(days=days, amount=rent_for_days(days, pppw, days_in_month(year, month)))


def multi_month_rent(start: date, end: date, pppw) -> RentAmount:
    """Sum of the per-month PCM amounts for every month touched by [start, end]."""
    total = Decimal("0.00")
    total_days = 0
    current = month_start(start)
    while current <= end:
        portion = month_rent(current.year, current.month, start, end, pppw)
        total += portion.amount
        total_days += portion.days
        current = next_month_start(current)
    return RentAmount(days=total_days, amount=to_money(total))


def quarter_rent(year: int, first_month: int, tenancy_start: date, tenancy_end: date, pppw) -> RentAmount:
    """Rent for the three months starting at ``first_month``, clipped to the tenancy."""
    quarter_first = date(year, first_month, 1)
    quarter_last = add_months(quarter_first, 3) - timedelta(days=1)
    effective_start = max(quarter_first, tenancy_start)
    effective_end = min(quarter_last, tenancy_end)
    if effective_start > effective_end:
        return ZERO_RENT
    return multi_month_rent(effective_start, effective_end, pppw)


@dataclass(frozen=True)
class MonthPortion:
    """One calendar month's share of a multi-month amount."""
    month: str
    period_start: date
    period_end: date
    days: int
    full_month_days: int
    is_full_month: bool
    amount: Decimal


@dataclass
class PaymentBreakdown:
    """How an amount due maps onto calendar months."""
    pppw: Decimal
    monthly_rate: Decimal
    daily_rate: Decimal
    rent_per_day: Decimal
    days: int
    is_full_month: bool
    is_multi_month: bool
    period_start: date
    period_end: date
    calculated_amount: Decimal
    days_in_month: Optional[int] = None
    monthly_breakdown: Optional[List[MonthPortion]] = field(default=None)
    calculation_method: str = CALCULATION_METHOD


class RentProrationCalculator:
    """
    Explains a schedule amount in terms of PPPW rent.

    Three shapes are recognised:
    1. a full calendar month (amount within 50p of the PCM rate);
    2. a multi-month span (1.5 months or more), split month by month;
    3. a single partial month, whose day count is back-solved.
    """

    @staticmethod
    def prorate(
        pppw,
        amount_due,
        due_date: date,
        tenancy_start: date,
        tenancy_end: Optional[date] = None,
        description: Optional[str] = None,
    ) -> PaymentBreakdown:
        """
        Args:
            pppw: Rent per person per week
            amount_due: Amount on the schedule line
            due_date: Due date of the line
            tenancy_start: Tenancy start date
            tenancy_end: Tenancy end date, None for open-ended rolling tenancies
            description: Line description. A rolling first payment is due on the
                1st of the month after a mid-month start; its period begins at the
                tenancy start rather than the due date.
        """
        pppw = as_decimal(pppw)
        amount_due = as_decimal(amount_due)
        monthly = calendar_month_rate(pppw)
        daily = daily_rate(pppw)

        is_full_month = abs(amount_due - monthly) < FULL_MONTH_TOLERANCE
        is_multi_month = amount_due / monthly >= MULTI_MONTH_THRESHOLD

        portions = None
        month_length = None

        if is_full_month:
            rent_per_day = monthly / AVERAGE_DAYS_PER_MONTH
            days = round_half_up(amount_due / daily)
        elif is_multi_month:
            rent_per_day = daily
            if is_rolling_first_with_partial(description):
                anchor = tenancy_start
            else:
                anchor = max(due_date, tenancy_start)
            horizon = tenancy_end or date(due_date.year + OPEN_ENDED_HORIZON_YEARS, 12, 31)
            portions = RentProrationCalculator.split_by_month(monthly, amount_due, anchor, horizon)
            days = sum(p.days for p in portions)
        else:
            rent_per_day = daily
            month_length = days_in_month(due_date.year, due_date.month)
            days = round_half_up(amount_due / monthly * month_length)

        if portions:
            period_start = portions[0].period_start
            period_end = portions[-1].period_end
            calculated = to_money(sum(p.amount for p in portions))
        else:
            period_start = due_date
            period_end = due_date + timedelta(days=max(days - 1, 0))
            if tenancy_end is not None and period_end > tenancy_end:
                period_end = tenancy_end
            calculated = amount_due

        return PaymentBreakdown(
            pppw=pppw,
            monthly_rate=monthly,
            daily_rate=daily,
            rent_per_day=rent_per_day,
            days=days,
            is_full_month=is_full_month,
            is_multi_month=is_multi_month,
            period_start=period_start,
            period_end=period_end,
            calculated_amount=calculated,
            days_in_month=month_length,
            monthly_breakdown=portions,
        )

    @staticmethod
    def split_by_month(monthly_rate: Decimal, amount_due: Decimal, anchor: date, tenancy_end: date) -> List[MonthPortion]:
        """
        Walk forward from ``anchor`` month by month, charging each month's
        overlap with [anchor, tenancy_end] until the amount is used up.
        """
        portions: List[MonthPortion] = []
        remaining = amount_due
        current = anchor
        iterations = 0

        while remaining > RECONCILIATION_EPSILON and iterations < MAX_BREAKDOWN_MONTHS and current <= tenancy_end:
            iterations += 1
            first = month_start(current)
            last = month_end(current)
            period_start = max(current, first)
            period_end = min(tenancy_end, last)

            if period_start <= period_end:
                days = days_between(period_start, period_end)
                full_days = days_in_month(first.year, first.month)
                is_full = days == full_days
                if is_full:
                    amount = to_money(monthly_rate)
                else:
                    amount = to_money(Decimal(days) / Decimal(full_days) * monthly_rate)
                remaining -= amount
                portions.append(MonthPortion(
                    month=month_label(period_start),
                    period_start=period_start,
                    period_end=period_end,
                    days=days,
                    full_month_days=full_days,
                    is_full_month=is_full,
                    amount=amount,
                ))

            current = next_month_start(current)

        return portions
