"""
Payment Record Ledger (Domain Logic).

Records money received against schedule lines and derives each line's
status from its payments. A line never holds more than its amount due:
an overpayment is rejected, never clamped.

Negative lines (deposit returns) are mirrored: refunds are negative
payments and may not go past the amount owed to the tenant.

All functions flush; the caller owns the transaction.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select, func, update, delete
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import (
    DomainValidationError,
    OverpaymentError,
    ResourceNotFoundError,
)
from backend.app.domain.rent.proration import PaymentBreakdown, RentProrationCalculator, as_decimal, to_money
from backend.app.models.deposit_enums import DepositStatus
from backend.app.models.holding_deposit import HoldingDeposit
from backend.app.models.payment_enums import PaymentType, ScheduleStatus, ScheduleType
from backend.app.models.payment_schedule import Payment, PaymentSchedule
from backend.app.models.tenancy import Tenancy, TenancyMember
from backend.app.models.tenancy_enums import TenancyStatus

logger = logging.getLogger(__name__)

# A balance smaller than a tenth of a penny is settled.
SETTLED_TOLERANCE = Decimal("0.001")
ZERO = Decimal("0.00")

OPEN_STATUSES = (ScheduleStatus.PENDING, ScheduleStatus.PARTIAL)


def derive_status(amount_due, total_paid, due_date: date, today: date) -> ScheduleStatus:
    """Status of a line given what has been paid against it."""
    amount_due = as_decimal(amount_due)
    total_paid = as_decimal(total_paid)

    if abs(amount_due - total_paid) < SETTLED_TOLERANCE:
        return ScheduleStatus.PAID
    if amount_due > 0 and ZERO < total_paid < amount_due:
        return ScheduleStatus.PARTIAL
    if amount_due < 0 and amount_due < total_paid < ZERO:
        return ScheduleStatus.PARTIAL
    if due_date < today:
        return ScheduleStatus.OVERDUE
    return ScheduleStatus.PENDING


@dataclass
class PaymentSummary:
    total_due: Decimal = ZERO
    total_paid: Decimal = ZERO
    total_outstanding: Decimal = ZERO
    status_counts: Dict[str, int] = field(default_factory=dict)


async def get_schedule(db: AsyncSession, agency_id: int, schedule_id: int, for_update: bool = False) -> PaymentSchedule:
    stmt = select(PaymentSchedule).where(
        PaymentSchedule.id == schedule_id,
        PaymentSchedule.agency_id == agency_id,
    )
    if for_update:
        stmt = stmt.with_for_update()
    schedule = await db.scalar(stmt)
    if not schedule:
        raise ResourceNotFoundError("Payment schedule", schedule_id)
    return schedule


async def total_paid(db: AsyncSession, agency_id: int, schedule_id: int) -> Decimal:
    paid = await db.scalar(
        select(func.coalesce(func.sum(Payment.amount), 0)).where(
            Payment.payment_schedule_id == schedule_id,
            Payment.agency_id == agency_id,
        )
    )
    return to_money(paid)


async def refresh_status(db: AsyncSession, agency_id: int, schedule: PaymentSchedule, today: date) -> PaymentSchedule:
    """Recompute a line's status from its payments; safe to call any number of times."""
    paid = await total_paid(db, agency_id, schedule.id)
    status = derive_status(schedule.amount_due, paid, schedule.due_date, today)
    if status != schedule.status:
        schedule.status = status
        await db.flush()
    return schedule


async def record_payment(
    db: AsyncSession,
    agency_id: int,
    schedule_id: int,
    amount,
    paid_date: date,
    today: date,
    reference: Optional[str] = None,
) -> Tuple[PaymentSchedule, Payment]:
    """
    Record money received against a line.

    Raises:
        DomainValidationError: zero amount, a sign that does not match the line,
            or the tenancy is not active
        OverpaymentError: the payment would take the line past its amount due
    """
    amount = to_money(amount)
    if amount == 0:
        raise DomainValidationError("Payment amount cannot be zero", field="amount")
    if paid_date is None:
        raise DomainValidationError("Payment date is required", field="paid_date")

    schedule = await get_schedule(db, agency_id, schedule_id, for_update=True)
    tenancy_status = await db.scalar(
        select(Tenancy.status).where(Tenancy.id == schedule.tenancy_id, Tenancy.agency_id == agency_id)
    )
    if tenancy_status != TenancyStatus.ACTIVE:
        raise DomainValidationError("Payments can only be recorded for active tenancies")

    is_refund = schedule.amount_due < 0
    if (amount < 0) != is_refund:
        raise DomainValidationError(
            "Refund lines take negative amounts" if is_refund else "Payment amount must be positive",
            field="amount",
        )

    remaining = to_money(schedule.amount_due) - await total_paid(db, agency_id, schedule.id)
    if not is_refund and amount > remaining:
        raise OverpaymentError(amount, remaining)
    if is_refund and amount < remaining:
        raise OverpaymentError(amount, remaining, refund=True)

    payment = Payment(
        agency_id=agency_id,
        payment_schedule_id=schedule.id,
        amount=amount,
        paid_date=paid_date,
        reference=reference,
    )
    db.add(payment)
    await db.flush()

    await refresh_status(db, agency_id, schedule, today)
    logger.info("Recorded payment of %s against schedule %s (status=%s)", amount, schedule.id, schedule.status.value)
    return schedule, payment


async def revert_payment(db: AsyncSession, agency_id: int, schedule_id: int, today: date) -> Tuple[PaymentSchedule, int]:
    """Delete every payment on a line. Returns the line and how many payments were removed."""
    schedule = await get_schedule(db, agency_id, schedule_id, for_update=True)
    result = await db.execute(
        delete(Payment).where(
            Payment.payment_schedule_id == schedule.id,
            Payment.agency_id == agency_id,
        )
    )
    await db.flush()
    await refresh_status(db, agency_id, schedule, today)
    return schedule, result.rowcount


async def delete_single_payment(
    db: AsyncSession, agency_id: int, schedule_id: int, payment_id: int, today: date
) -> PaymentSchedule:
    schedule = await get_schedule(db, agency_id, schedule_id, for_update=True)
    payment = await db.scalar(
        select(Payment).where(
            Payment.id == payment_id,
            Payment.payment_schedule_id == schedule.id,
            Payment.agency_id == agency_id,
        )
    )
    if not payment:
        raise ResourceNotFoundError("Payment record", payment_id)

    await db.delete(payment)
    await db.flush()
    return await refresh_status(db, agency_id, schedule, today)


async def mark_overdue_schedules(db: AsyncSession, agency_id: int, today: date) -> int:
    """Flip open lines past their due date to overdue. Returns the number of lines changed."""
    result = await db.execute(
        update(PaymentSchedule)
        .where(
            PaymentSchedule.agency_id == agency_id,
            PaymentSchedule.status.in_(OPEN_STATUSES),
            PaymentSchedule.due_date < today,
        )
        .values(status=ScheduleStatus.OVERDUE)
        .execution_options(synchronize_session="fetch")
    )
    await db.flush()
    return result.rowcount


async def payment_history(db: AsyncSession, agency_id: int, schedule_id: int) -> List[Payment]:
    await get_schedule(db, agency_id, schedule_id)
    result = await db.execute(
        select(Payment)
        .where(Payment.payment_schedule_id == schedule_id, Payment.agency_id == agency_id)
        .order_by(Payment.paid_date.desc(), Payment.id.desc())
    )
    return list(result.scalars().all())


async def tenancy_schedules(db: AsyncSession, agency_id: int, tenancy_id: int) -> List[Tuple[PaymentSchedule, Decimal]]:
    """Every line of a tenancy with the amount paid against it, in due-date order."""
    await _get_tenancy(db, agency_id, tenancy_id)
    paid = (
        select(Payment.payment_schedule_id, func.sum(Payment.amount).label("paid"))
        .where(Payment.agency_id == agency_id)
        .group_by(Payment.payment_schedule_id)
        .subquery()
    )
    result = await db.execute(
        select(PaymentSchedule, func.coalesce(paid.c.paid, 0))
        .outerjoin(paid, paid.c.payment_schedule_id == PaymentSchedule.id)
        .where(PaymentSchedule.tenancy_id == tenancy_id, PaymentSchedule.agency_id == agency_id)
        .order_by(PaymentSchedule.due_date, PaymentSchedule.id)
    )
    return [(schedule, to_money(amount)) for schedule, amount in result.all()]


async def tenancy_payment_summary(db: AsyncSession, agency_id: int, tenancy_id: int) -> PaymentSummary:
    summary = PaymentSummary(status_counts={s.value: 0 for s in ScheduleStatus})
    for schedule, paid in await tenancy_schedules(db, agency_id, tenancy_id):
        summary.total_due += to_money(schedule.amount_due)
        summary.total_paid += paid
        summary.status_counts[schedule.status.value] += 1
    summary.total_outstanding = summary.total_due - summary.total_paid
    return summary


async def _get_tenancy(db: AsyncSession, agency_id: int, tenancy_id: int) -> Tenancy:
    tenancy = await db.scalar(
        select(Tenancy).where(Tenancy.id == tenancy_id, Tenancy.agency_id == agency_id)
    )
    if not tenancy:
        raise ResourceNotFoundError("Tenancy", tenancy_id)
    return tenancy


async def create_manual_schedule(
    db: AsyncSession,
    agency_id: int,
    tenancy_id: int,
    member_id: int,
    due_date: date,
    amount_due,
    payment_type: PaymentType,
    today: date,
    description: Optional[str] = None,
) -> PaymentSchedule:
    """Add a staff-created line to an active tenancy."""
    amount_due = to_money(amount_due)
    if amount_due == 0:
        raise DomainValidationError("amount_due cannot be zero", field="amount_due")

    tenancy = await _get_tenancy(db, agency_id, tenancy_id)
    if tenancy.status != TenancyStatus.ACTIVE:
        raise DomainValidationError("Payment schedules can only be created for active tenancies")

    member = await db.scalar(
        select(TenancyMember).where(
            TenancyMember.id == member_id,
            TenancyMember.tenancy_id == tenancy_id,
            TenancyMember.agency_id == agency_id,
        )
    )
    if not member:
        raise ResourceNotFoundError("Tenancy member", member_id)

    schedule = PaymentSchedule(
        agency_id=agency_id,
        tenancy_id=tenancy_id,
        tenancy_member_id=member_id,
        payment_type=payment_type,
        schedule_type=ScheduleType.MANUAL,
        description=description,
        due_date=due_date,
        amount_due=amount_due,
        status=derive_status(amount_due, ZERO, due_date, today),
    )
    db.add(schedule)
    await db.flush()
    return schedule


async def update_schedule(
    db: AsyncSession,
    agency_id: int,
    schedule_id: int,
    amount_due,
    due_date: date,
    payment_type: PaymentType,
    description: str,
    today: date,
) -> PaymentSchedule:
    """
    Edit a line. Automated lines become manual once edited.

    The new amount may not fall below what has already been paid.
    """
    amount_due = to_money(amount_due)
    if amount_due == 0:
        raise DomainValidationError("Valid amount_due is required", field="amount_due")
    if not description or not description.strip():
        raise DomainValidationError("Description is required", field="description")

    schedule = await get_schedule(db, agency_id, schedule_id, for_update=True)
    paid = await total_paid(db, agency_id, schedule.id)
    if (amount_due > 0 and paid > amount_due) or (amount_due < 0 and paid < amount_due):
        raise DomainValidationError(
            f"Amount due (£{amount_due:.2f}) is less than the amount already paid (£{paid:.2f})",
            field="amount_due",
        )

    schedule.amount_due = amount_due
    schedule.due_date = due_date
    schedule.payment_type = payment_type
    schedule.description = description.strip()
    if schedule.schedule_type == ScheduleType.AUTOMATED:
        schedule.schedule_type = ScheduleType.MANUAL
    await db.flush()
    return await refresh_status(db, agency_id, schedule, today)


async def delete_schedule(db: AsyncSession, agency_id: int, schedule_id: int) -> None:
    schedule = await get_schedule(db, agency_id, schedule_id, for_update=True)
    if await total_paid(db, agency_id, schedule.id) != 0:
        raise DomainValidationError("Cannot delete a payment that has been paid. Please revert the payment first.")
    await db.delete(schedule)
    await db.flush()


async def apply_rent_credit(
    db: AsyncSession, agency_id: int, tenancy_id: int, today: date, deposit_id: Optional[int] = None
) -> int:
    """
    Reduce each member's first rent line by their holding deposit applied to rent.

    Only deposits in ``applied_to_rent`` for this tenancy are used, matched to
    members through the application. Only the unpaid part of the line is
    credited, so it never drops below what has already been paid, and the
    line's status is recomputed. Returns the number of lines reduced.
    """
    stmt = (
        select(HoldingDeposit, TenancyMember.id)
        .join(TenancyMember, TenancyMember.application_id == HoldingDeposit.application_id)
        .where(
            HoldingDeposit.agency_id == agency_id,
            HoldingDeposit.applied_to_tenancy_id == tenancy_id,
            HoldingDeposit.status == DepositStatus.APPLIED_TO_RENT,
            TenancyMember.tenancy_id == tenancy_id,
            TenancyMember.agency_id == agency_id,
        )
    )
    if deposit_id is not None:
        stmt = stmt.where(HoldingDeposit.id == deposit_id)

    reduced = 0
    for deposit, member_id in (await db.execute(stmt)).all():
        first_rent = await db.scalar(
            select(PaymentSchedule)
            .where(
                PaymentSchedule.agency_id == agency_id,
                PaymentSchedule.tenancy_id == tenancy_id,
                PaymentSchedule.tenancy_member_id == member_id,
                PaymentSchedule.payment_type == PaymentType.RENT,
            )
            .order_by(PaymentSchedule.due_date, PaymentSchedule.id)
            .limit(1)
            .with_for_update()
        )
        if not first_rent:
            continue

        before = to_money(first_rent.amount_due)
        paid = await total_paid(db, agency_id, first_rent.id)
        credit = min(to_money(deposit.amount), max(ZERO, before - paid))
        if credit <= 0:
            logger.warning(
                "Holding deposit %s not credited: first rent line %s of member %s is already paid",
                deposit.id, first_rent.id, member_id,
            )
            continue

        first_rent.amount_due = before - credit
        await db.flush()
        await refresh_status(db, agency_id, first_rent, today)
        reduced += 1
        logger.info(
            "Holding deposit %s reduced first rent of member %s: %s -> %s",
            deposit.id, member_id, before, first_rent.amount_due,
        )
    return reduced


async def schedule_breakdown(db: AsyncSession, agency_id: int, schedule_id: int) -> PaymentBreakdown:
    """Explain a rent line in calendar-month terms."""
    schedule = await get_schedule(db, agency_id, schedule_id)
    if schedule.payment_type != PaymentType.RENT or schedule.tenancy_member_id is None:
        raise DomainValidationError("Breakdown is only available for rent lines")

    row = (await db.execute(
        select(TenancyMember.rent_pppw, Tenancy.start_date, Tenancy.end_date)
        .join(Tenancy, Tenancy.id == TenancyMember.tenancy_id)
        .where(TenancyMember.id == schedule.tenancy_member_id, TenancyMember.agency_id == agency_id)
    )).first()
    if not row or not row.rent_pppw:
        raise DomainValidationError("Tenancy member has no weekly rent")

    return RentProrationCalculator.prorate(
        pppw=row.rent_pppw,
        amount_due=schedule.amount_due,
        due_date=schedule.due_date,
        tenancy_start=row.start_date,
        tenancy_end=row.end_date,
        description=schedule.description,
    )
