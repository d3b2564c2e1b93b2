"""
Payment Schedule Generator (Domain Logic).

Builds the due lines of a tenancy from its members' rent terms:
- fixed-term tenancies get the whole rent schedule for the member's cadence;
- rolling monthly tenancies get only their first payment, the rest is
  produced month by month by the rolling payments job;
- a single security deposit line is due 7 days before the tenancy starts.

Cadence functions are pure; the service methods persist lines with flush()
and leave the commit to the caller.
"""

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import (
    DomainValidationError,
    InvalidStateTransitionError,
    ResourceNotFoundError,
)
from backend.app.domain.rent.proration import (
    add_months,
    as_decimal,
    month_end,
    month_label,
    month_rent,
    multi_month_rent,
    next_month_start,
    quarter_rent,
    to_money,
)
from backend.app.models.payment_enums import PaymentOption, PaymentType, ScheduleStatus, ScheduleType
from backend.app.models.payment_schedule import PaymentSchedule
from backend.app.models.tenancy import Tenancy, TenancyMember

logger = logging.getLogger(__name__)

RENT_PREFIX = "Rent - "
SECURITY_DEPOSIT_DESCRIPTION = "Security Deposit"
DEPOSIT_RETURN_DESCRIPTION = "Deposit Return"
DEPOSIT_DUE_DAYS_BEFORE_START = 7
DEPOSIT_RETURN_DAYS_AFTER_KEYS = 14

# Academic-year quarters: July, October, January, April
QUARTER_START_MONTHS = (7, 10, 1, 4)
QUARTER_NAMES = {
    7: "July-September",
    10: "October-December",
    1: "January-March",
    4: "April-June",
}
MONTHLY_PHASE_MONTHS = (7, 8, 9)


@dataclass
class ScheduleLine:
    """A due line before it is persisted."""
    due_date: date
    amount_due: Decimal
    description: str
    payment_type: PaymentType = PaymentType.RENT
    covers_from: Optional[date] = None
    covers_to: Optional[date] = None
    tenancy_member_id: Optional[int] = None


def _rent_line(due_date: date, amount: Decimal, period: str, covers_from: date, covers_to: date) -> ScheduleLine:
    return ScheduleLine(
        due_date=due_date,
        amount_due=amount,
        description=f"{RENT_PREFIX}{period}",
        covers_from=covers_from,
        covers_to=covers_to,
    )


def _partial_first_month(start: date, end: date, pppw) -> List[ScheduleLine]:
    rent = month_rent(start.year, start.month, start, end, pppw)
    if rent.amount <= 0:
        return []
    return [_rent_line(start, rent.amount, f"{month_label(start)} (partial)", start, min(month_end(start), end))]


def _month_line(current: date, start: date, end: date, pppw) -> Optional[ScheduleLine]:
    rent = month_rent(current.year, current.month, start, end, pppw)
    if rent.amount <= 0:
        return None
    return _rent_line(current, rent.amount, month_label(current), max(current, start), min(month_end(current), end))


def _quarter_line(quarter_first: date, due_date: date, start: date, end: date, pppw) -> Optional[ScheduleLine]:
    rent = quarter_rent(quarter_first.year, quarter_first.month, start, end, pppw)
    if rent.amount <= 0:
        return None
    quarter_last = add_months(quarter_first, 3) - timedelta(days=1)
    return _rent_line(
        due_date,
        rent.amount,
        f"{QUARTER_NAMES[quarter_first.month]} {quarter_first.year}",
        max(quarter_first, start),
        min(quarter_last, end),
    )


def monthly_schedule(start: date, end: date, pppw) -> List[ScheduleLine]:
    """A partial first month due on the start date, then one line on the 1st of each month."""
    lines: List[ScheduleLine] = []
    current = start.replace(day=1)
    if start.day > 1:
        lines.extend(_partial_first_month(start, end, pppw))
        current = next_month_start(start)

    while current <= end:
        line = _month_line(current, start, end, pppw)
        if line:
            lines.append(line)
        current = next_month_start(current)
    return lines


def first_quarter_start(start: date) -> date:
    """
    First quarter boundary the tenancy pays from.

    A tenancy starting on the 1st of a quarter's month pays that quarter,
    otherwise it pays up to the next quarter boundary first.
    """
    month, year = start.month, start.year
    on_first = start.day == 1
    if 7 <= month <= 9:
        return date(year, 7 if (month == 7 and on_first) else 10, 1)
    if 10 <= month <= 12:
        if on_first:
            return date(year, 10, 1)
        return date(year + 1, 1, 1)
    if 1 <= month <= 3:
        return date(year, 1 if (month == 1 and on_first) else 4, 1)
    return date(year, 4 if (month == 4 and on_first) else 7, 1)


def quarterly_schedule(start: date, end: date, pppw) -> List[ScheduleLine]:
    lines: List[ScheduleLine] = []
    quarter = first_quarter_start(start)

    if start < quarter:
        period_end = min(quarter - timedelta(days=1), end)
        rent = multi_month_rent(start, period_end, pppw)
        if rent.amount > 0:
            lines.append(_rent_line(start, rent.amount, "Until quarter start", start, period_end))

    is_first = True
    while quarter <= end:
        due = max(start, quarter) if is_first else quarter
        line = _quarter_line(quarter, due, start, end, pppw)
        if line:
            lines.append(line)
            is_first = False
        quarter = add_months(quarter, 3)
    return lines


def monthly_to_quarterly_schedule(start: date, end: date, pppw) -> List[ScheduleLine]:
    """July to September monthly, then October, January and April quarters."""
    lines: List[ScheduleLine] = []
    current = start.replace(day=1)
    if start.day > 1:
        lines.extend(_partial_first_month(start, end, pppw))
        current = next_month_start(start)

    while current <= end:
        if current.month in MONTHLY_PHASE_MONTHS:
            line = _month_line(current, start, end, pppw)
            step = 1
        elif current.month in QUARTER_NAMES:
            line = _quarter_line(current, current, start, end, pppw)
            step = 3
        else:
            # Mid-quarter months: billed by their quarter line, or not at all
            # when the tenancy starts after that quarter began
            line = None
            step = 1
        if line:
            lines.append(line)
        current = add_months(current, step)
    return lines


def upfront_schedule(start: date, end: date, pppw) -> List[ScheduleLine]:
    rent = multi_month_rent(start, end, pppw)
    return [_rent_line(start, rent.amount, "Full tenancy (upfront)", start, end)]


CADENCES = {
    PaymentOption.MONTHLY: monthly_schedule,
    PaymentOption.QUARTERLY: quarterly_schedule,
    PaymentOption.MONTHLY_TO_QUARTERLY: monthly_to_quarterly_schedule,
    PaymentOption.UPFRONT: upfront_schedule,
}


def rent_schedule(option: PaymentOption, start: date, end: date, pppw) -> List[ScheduleLine]:
    try:
        cadence = CADENCES[PaymentOption(option)]
    except (KeyError, ValueError):
        raise DomainValidationError(f"Unknown payment option: {option}", field="payment_option")
    return cadence(start, end, pppw)


def first_month_payment(start: date, pppw, end: Optional[date] = None) -> Optional[ScheduleLine]:
    """
    First payment of a rolling monthly tenancy.

    Rolling rent is always due on the 1st. A tenancy starting on the 1st pays
    that month; one starting mid-month pays the partial month plus the whole
    next month on the 1st of the next month. An end date clips both months,
    and a tenancy ending in its first month pays only that part, on the start date.
    """
    if start.day == 1:
        last = min(month_end(start), end) if end else month_end(start)
        rent = month_rent(start.year, start.month, start, last, pppw)
        if rent.amount <= 0:
            return None
        return _rent_line(start, rent.amount, month_label(start), start, last)

    following = next_month_start(start)
    if end is not None and end < following:
        partial_only = _partial_first_month(start, end, pppw) if end >= start else []
        return partial_only[0] if partial_only else None

    following_end = min(month_end(following), end) if end else month_end(following)
    partial = month_rent(start.year, start.month, start, month_end(start), pppw)
    full = month_rent(following.year, following.month, following, following_end, pppw)
    total = to_money(partial.amount + full.amount)
    if total <= 0:
        return None
    return _rent_line(
        following,
        total,
        f"{month_label(start)} (partial) & {month_label(following)}",
        start,
        following_end,
    )


def deposit_line(tenancy_start: date, members: Iterable) -> Optional[ScheduleLine]:
    """One tenancy-level line for the combined security deposits, or None when nothing is owed."""
    total = to_money(sum((as_decimal(m.deposit_amount or 0) for m in members), Decimal("0")))
    if total <= 0:
        return None
    return ScheduleLine(
        due_date=tenancy_start - timedelta(days=DEPOSIT_DUE_DAYS_BEFORE_START),
        amount_due=total,
        description=SECURITY_DEPOSIT_DESCRIPTION,
        payment_type=PaymentType.DEPOSIT,
    )


class PaymentScheduleGenerator:

    @staticmethod
    def generate(tenancy, members: List) -> List[ScheduleLine]:
        """
        Build every line for a tenancy without persisting anything.

        Deposit lines are always produced; rent lines only when the agency
        manages rent for the landlord.
        """
        lines: List[ScheduleLine] = []

        deposit = deposit_line(tenancy.start_date, members)
        if deposit:
            lines.append(deposit)

        if not tenancy.manage_rent:
            return lines

        if not tenancy.is_rolling_monthly and tenancy.end_date is None:
            raise DomainValidationError("Fixed-term tenancy has no end date", field="end_date")

        for member in members:
            if tenancy.is_rolling_monthly:
                first = first_month_payment(tenancy.start_date, member.rent_pppw, tenancy.end_date)
                member_lines = [first] if first else []
            elif member.payment_option is None:
                logger.warning("Tenancy member %s has no payment option, skipping rent", member.id)
                continue
            else:
                member_lines = rent_schedule(
                    member.payment_option, tenancy.start_date, tenancy.end_date, member.rent_pppw
                )
            for line in member_lines:
                line.tenancy_member_id = member.id
            lines.extend(member_lines)

        return lines

    @staticmethod
    async def generate_payment_schedule(db: AsyncSession, agency_id: int, tenancy_id: int) -> List[PaymentSchedule]:
        """
        Generate and store the schedule of a tenancy.

        Raises:
            ResourceNotFoundError: tenancy not in this agency
            InvalidStateTransitionError: the tenancy already has generated lines
        """
        tenancy = await db.scalar(
            select(Tenancy).where(Tenancy.id == tenancy_id, Tenancy.agency_id == agency_id)
        )
        if not tenancy:
            raise ResourceNotFoundError("Tenancy", tenancy_id)

        existing = await db.scalar(
            select(func.count(PaymentSchedule.id)).where(
                PaymentSchedule.agency_id == agency_id,
                PaymentSchedule.tenancy_id == tenancy_id,
                PaymentSchedule.schedule_type == ScheduleType.AUTOMATED,
            )
        )
        if existing:
            raise InvalidStateTransitionError(
                entity="tenancy",
                current_status="scheduled",
                required_status=["unscheduled"],
                action="generate payment schedule",
            )

        result = await db.execute(
            select(TenancyMember)
            .where(TenancyMember.tenancy_id == tenancy_id, TenancyMember.agency_id == agency_id)
            .order_by(TenancyMember.id)
        )
        members = result.scalars().all()

        lines = PaymentScheduleGenerator.generate(tenancy, members)
        schedules = await PaymentScheduleGenerator.store_lines(db, agency_id, tenancy_id, lines)

        logger.info(
            "Generated %d payment lines for tenancy %s (rolling=%s)",
            len(schedules), tenancy_id, tenancy.is_rolling_monthly,
        )
        return schedules

    @staticmethod
    async def store_lines(
        db: AsyncSession, agency_id: int, tenancy_id: int, lines: Iterable[ScheduleLine]
    ) -> List[PaymentSchedule]:
        schedules = [
            PaymentSchedule(
                agency_id=agency_id,
                tenancy_id=tenancy_id,
                tenancy_member_id=line.tenancy_member_id,
                payment_type=line.payment_type,
                schedule_type=ScheduleType.AUTOMATED,
                description=line.description,
                due_date=line.due_date,
                amount_due=line.amount_due,
                covers_from=line.covers_from,
                covers_to=line.covers_to,
                status=ScheduleStatus.PENDING,
            )
            for line in lines
        ]
        db.add_all(schedules)
        await db.flush()
        return schedules

    @staticmethod
    async def create_deposit_return_schedule(
        db: AsyncSession, agency_id: int, tenancy_id: int, key_return_date: date
    ) -> List[PaymentSchedule]:
        """
        Create the deposit returns owed once keys are handed back.

        One negative deposit line per member with a deposit, due 14 days
        after key return.
        """
        tenancy = await db.scalar(
            select(Tenancy).where(Tenancy.id == tenancy_id, Tenancy.agency_id == agency_id)
        )
        if not tenancy:
            raise ResourceNotFoundError("Tenancy", tenancy_id)

        existing = await db.scalar(
            select(func.count(PaymentSchedule.id)).where(
                PaymentSchedule.agency_id == agency_id,
                PaymentSchedule.tenancy_id == tenancy_id,
                PaymentSchedule.payment_type == PaymentType.DEPOSIT,
                PaymentSchedule.description == DEPOSIT_RETURN_DESCRIPTION,
            )
        )
        if existing:
            raise DomainValidationError("Deposit return schedules already exist for this tenancy")

        result = await db.execute(
            select(TenancyMember)
            .where(
                TenancyMember.tenancy_id == tenancy_id,
                TenancyMember.agency_id == agency_id,
                TenancyMember.deposit_amount > 0,
            )
            .order_by(TenancyMember.id)
        )
        members = result.scalars().all()

        due = key_return_date + timedelta(days=DEPOSIT_RETURN_DAYS_AFTER_KEYS)
        lines = [
            ScheduleLine(
                due_date=due,
                amount_due=-to_money(member.deposit_amount),
                description=DEPOSIT_RETURN_DESCRIPTION,
                payment_type=PaymentType.DEPOSIT,
                tenancy_member_id=member.id,
            )
            for member in members
        ]
        return await PaymentScheduleGenerator.store_lines(db, agency_id, tenancy_id, lines)
