"""
Rolling Monthly Payments (Domain Logic).

Rolling tenancies have no end date to generate against, so rent lines are
created one month in advance by a recurring job. Running it again for the
same month creates nothing new.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.domain.rent.proration import month_end, month_label, month_rent, next_month_start
from backend.app.domain.rent.schedule_generator import (
    PaymentScheduleGenerator,
    ScheduleLine,
    RENT_PREFIX,
    first_month_payment,
)
from backend.app.models.payment_enums import PaymentType
from backend.app.models.payment_schedule import PaymentSchedule
from backend.app.models.tenancy import Tenancy, TenancyMember
from backend.app.models.tenancy_enums import TenancyStatus

logger = logging.getLogger(__name__)

ROLLING_STATUSES = (TenancyStatus.APPROVAL, TenancyStatus.ACTIVE)


@dataclass
class RollingRunResult:
    target_month: date
    tenancies_processed: int = 0
    payments_created: int = 0
    payments_skipped: int = 0


def monthly_payment(target: date, tenancy_start: date, tenancy_end: Optional[date], pppw) -> Optional[ScheduleLine]:
    """Rent for the month starting ``target``, due on the 1st, clipped to the tenancy."""
    last = month_end(target)
    if last < tenancy_start:
        return None
    if tenancy_end is not None and target > tenancy_end:
        return None

    rent = month_rent(target.year, target.month, tenancy_start, tenancy_end or last, pppw)
    if rent.amount <= 0:
        return None
    return ScheduleLine(
        due_date=target,
        amount_due=rent.amount,
        description=f"{RENT_PREFIX}{month_label(target)}",
        covers_from=max(target, tenancy_start),
        covers_to=min(last, tenancy_end) if tenancy_end else last,
    )


def covered_by_first_payment_months(tenancy_start: date):
    """Months a mid-month rolling start pays for in its first payment."""
    if tenancy_start.day == 1:
        return ()
    return (tenancy_start.replace(day=1), next_month_start(tenancy_start))


async def _rent_line_due_between(
    db: AsyncSession, agency_id: int, tenancy_id: int, member_id: int, first: date, last: date
) -> bool:
    found = await db.scalar(
        select(PaymentSchedule.id).where(
            PaymentSchedule.agency_id == agency_id,
            PaymentSchedule.tenancy_id == tenancy_id,
            PaymentSchedule.tenancy_member_id == member_id,
            PaymentSchedule.payment_type == PaymentType.RENT,
            PaymentSchedule.due_date >= first,
            PaymentSchedule.due_date <= last,
        ).limit(1)
    )
    return found is not None


async def generate_rolling_monthly_payments(db: AsyncSession, agency_id: int, today: date) -> RollingRunResult:
    """
    Create next month's rent line for every member of every rolling tenancy.

    Selected tenancies are rolling, auto-generating, in approval or active
    status, managed for rent, and not ended before the target month.
    """
    target = next_month_start(today)
    outcome = RollingRunResult(target_month=target)

    result = await db.execute(
        select(Tenancy).where(
            Tenancy.agency_id == agency_id,
            Tenancy.is_rolling_monthly.is_(True),
            Tenancy.auto_generate_payments.is_(True),
            Tenancy.manage_rent.is_(True),
            Tenancy.status.in_(ROLLING_STATUSES),
            or_(Tenancy.end_date.is_(None), Tenancy.end_date >= target),
        ).order_by(Tenancy.id)
    )
    tenancies = result.scalars().all()

    for tenancy in tenancies:
        members = (await db.execute(
            select(TenancyMember)
            .where(TenancyMember.tenancy_id == tenancy.id, TenancyMember.agency_id == agency_id)
            .order_by(TenancyMember.id)
        )).scalars().all()

        first_payment_months = covered_by_first_payment_months(tenancy.start_date)
        lines = []
        for member in members:
            if not member.rent_pppw or member.rent_pppw <= 0:
                logger.debug("Tenancy %s member %s has no rent, skipping", tenancy.id, member.id)
                continue

            if target in first_payment_months:
                # The first payment is due on the 1st of the month after the start
                first_due = first_payment_months[1]
                if await _rent_line_due_between(db, agency_id, tenancy.id, member.id, first_due, first_due):
                    outcome.payments_skipped += 1
                    continue

            if await _rent_line_due_between(db, agency_id, tenancy.id, member.id, target, month_end(target)):
                outcome.payments_skipped += 1
                continue

            if target in first_payment_months:
                line = first_month_payment(tenancy.start_date, member.rent_pppw, tenancy.end_date)
            else:
                line = monthly_payment(target, tenancy.start_date, tenancy.end_date, member.rent_pppw)

            if line:
                line.tenancy_member_id = member.id
                lines.append(line)

        if lines:
            await PaymentScheduleGenerator.store_lines(db, agency_id, tenancy.id, lines)
            outcome.payments_created += len(lines)
            logger.info("Tenancy %s: created %d rolling payment(s) for %s", tenancy.id, len(lines), month_label(target))
        outcome.tenancies_processed += 1

    logger.info(
        "Rolling payments for agency %s, %s: %d created, %d skipped",
        agency_id, month_label(target), outcome.payments_created, outcome.payments_skipped,
    )
    return outcome
