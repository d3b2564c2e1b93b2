"""
Tests for the payment record ledger.
"""

import pytest
from datetime import date
from decimal import Decimal

from backend.app.core.exceptions import DomainValidationError, OverpaymentError, ResourceNotFoundError
from backend.app.domain.ledger import payment_ledger
from backend.app.domain.ledger.payment_ledger import derive_status
from backend.app.domain.rent.schedule_generator import PaymentScheduleGenerator
from backend.app.models.payment_enums import PaymentOption, PaymentType, ScheduleStatus, ScheduleType
from backend.app.models.tenancy_enums import TenancyStatus

from conftest import AGENCY_ID

TODAY = date(2025, 10, 15)


@pytest.mark.parametrize("amount_due, paid, due, expected", [
    ("100.00", "0.00", date(2025, 11, 1), ScheduleStatus.PENDING),
    ("100.00", "40.00", date(2025, 11, 1), ScheduleStatus.PARTIAL),
    ("100.00", "40.00", date(2025, 10, 1), ScheduleStatus.PARTIAL),
    ("100.00", "100.00", date(2025, 10, 1), ScheduleStatus.PAID),
    ("100.00", "0.00", date(2025, 10, 1), ScheduleStatus.OVERDUE),
    ("-300.00", "-100.00", date(2025, 11, 1), ScheduleStatus.PARTIAL),
    ("-300.00", "-300.00", date(2025, 11, 1), ScheduleStatus.PAID),
    ("0.00", "0.00", date(2025, 10, 1), ScheduleStatus.PAID),
])
def test_derive_status(amount_due, paid, due, expected):
    assert derive_status(Decimal(amount_due), Decimal(paid), due, TODAY) == expected


@pytest.fixture
async def schedule_lines(db_session, make_tenancy):
    """An active monthly tenancy with its generated lines."""
    tenancy = await make_tenancy(
        date(2025, 10, 1), date(2026, 3, 31),
        members=[{"rent_pppw": Decimal("100.00"), "deposit_amount": Decimal("500.00"),
                  "payment_option": PaymentOption.MONTHLY}],
    )
    lines = await PaymentScheduleGenerator.generate_payment_schedule(db_session, AGENCY_ID, tenancy.id)
    await db_session.commit()
    return tenancy, lines


def _rent(lines, due):
    return next(line for line in lines if line.payment_type == PaymentType.RENT and line.due_date == due)


@pytest.mark.asyncio
async def test_partial_then_full_payment(db_session, schedule_lines):
    _, lines = schedule_lines
    line = _rent(lines, date(2025, 11, 1))

    schedule, _ = await payment_ledger.record_payment(
        db_session, AGENCY_ID, line.id, Decimal("200.00"), date(2025, 10, 20), TODAY
    )
    assert schedule.status == ScheduleStatus.PARTIAL

    schedule, payment = await payment_ledger.record_payment(
        db_session, AGENCY_ID, line.id, Decimal("233.33"), date(2025, 10, 25), TODAY, reference="BACS-1"
    )
    await db_session.commit()

    assert schedule.status == ScheduleStatus.PAID
    assert payment.reference == "BACS-1"
    assert await payment_ledger.total_paid(db_session, AGENCY_ID, line.id) == Decimal("433.33")


@pytest.mark.asyncio
async def test_overpayment_rejected_and_line_unchanged(db_session, schedule_lines):
    _, lines = schedule_lines
    line = _rent(lines, date(2025, 11, 1))

    with pytest.raises(OverpaymentError) as exc_info:
        await payment_ledger.record_payment(
            db_session, AGENCY_ID, line.id, Decimal("433.34"), date(2025, 10, 20), TODAY
        )

    assert "exceeds remaining balance" in exc_info.value.message
    assert await payment_ledger.total_paid(db_session, AGENCY_ID, line.id) == Decimal("0.00")
    assert line.status == ScheduleStatus.PENDING


@pytest.mark.asyncio
async def test_zero_payment_rejected(db_session, schedule_lines):
    _, lines = schedule_lines
    with pytest.raises(DomainValidationError):
        await payment_ledger.record_payment(
            db_session, AGENCY_ID, lines[0].id, Decimal("0"), date(2025, 10, 20), TODAY
        )


@pytest.mark.asyncio
async def test_negative_payment_on_rent_line_rejected(db_session, schedule_lines):
    _, lines = schedule_lines
    line = _rent(lines, date(2025, 11, 1))

    with pytest.raises(DomainValidationError) as exc_info:
        await payment_ledger.record_payment(
            db_session, AGENCY_ID, line.id, Decimal("-50.00"), date(2025, 10, 20), TODAY
        )
    assert exc_info.value.details == {"field": "amount"}

    # The balance is untouched, so more than the amount due is still refused
    with pytest.raises(OverpaymentError):
        await payment_ledger.record_payment(
            db_session, AGENCY_ID, line.id, Decimal("483.33"), date(2025, 10, 20), TODAY
        )
    assert await payment_ledger.total_paid(db_session, AGENCY_ID, line.id) == Decimal("0.00")


@pytest.mark.asyncio
async def test_positive_payment_on_refund_line_rejected(db_session, schedule_lines):
    tenancy, _ = schedule_lines
    [refund_line] = await PaymentScheduleGenerator.create_deposit_return_schedule(
        db_session, AGENCY_ID, tenancy.id, date(2026, 3, 31)
    )

    with pytest.raises(DomainValidationError):
        await payment_ledger.record_payment(
            db_session, AGENCY_ID, refund_line.id, Decimal("100.00"), date(2026, 4, 10), TODAY
        )


@pytest.mark.asyncio
async def test_payment_requires_active_tenancy(db_session, make_tenancy):
    tenancy = await make_tenancy(date(2025, 10, 1), date(2026, 3, 31), status=TenancyStatus.APPROVAL)
    lines = await PaymentScheduleGenerator.generate_payment_schedule(db_session, AGENCY_ID, tenancy.id)
    await db_session.commit()

    with pytest.raises(DomainValidationError) as exc_info:
        await payment_ledger.record_payment(
            db_session, AGENCY_ID, lines[0].id, Decimal("10.00"), date(2025, 10, 20), TODAY
        )
    assert "active tenancies" in exc_info.value.message


@pytest.mark.asyncio
async def test_payment_on_other_agency_line_not_found(db_session, schedule_lines):
    _, lines = schedule_lines
    with pytest.raises(ResourceNotFoundError):
        await payment_ledger.record_payment(
            db_session, AGENCY_ID + 1, lines[0].id, Decimal("10.00"), date(2025, 10, 20), TODAY
        )


@pytest.mark.asyncio
async def test_revert_restores_status_from_due_date(db_session, schedule_lines):
    _, lines = schedule_lines
    line = _rent(lines, date(2025, 10, 1))
    await payment_ledger.record_payment(db_session, AGENCY_ID, line.id, Decimal("100.00"), TODAY, TODAY)
    await payment_ledger.record_payment(db_session, AGENCY_ID, line.id, Decimal("50.00"), TODAY, TODAY)

    schedule, removed = await payment_ledger.revert_payment(db_session, AGENCY_ID, line.id, TODAY)
    await db_session.commit()

    assert removed == 2
    assert schedule.status == ScheduleStatus.OVERDUE
    assert await payment_ledger.payment_history(db_session, AGENCY_ID, line.id) == []


@pytest.mark.asyncio
async def test_delete_single_payment(db_session, schedule_lines):
    _, lines = schedule_lines
    line = _rent(lines, date(2025, 11, 1))
    _, keep = await payment_ledger.record_payment(db_session, AGENCY_ID, line.id, Decimal("100.00"), TODAY, TODAY)
    _, drop = await payment_ledger.record_payment(db_session, AGENCY_ID, line.id, Decimal("333.33"), TODAY, TODAY)
    assert line.status == ScheduleStatus.PAID

    schedule = await payment_ledger.delete_single_payment(db_session, AGENCY_ID, line.id, drop.id, TODAY)
    await db_session.commit()

    assert schedule.status == ScheduleStatus.PARTIAL
    history = await payment_ledger.payment_history(db_session, AGENCY_ID, line.id)
    assert [p.id for p in history] == [keep.id]


@pytest.mark.asyncio
async def test_refund_on_deposit_return(db_session, schedule_lines):
    tenancy, _ = schedule_lines
    [refund_line] = await PaymentScheduleGenerator.create_deposit_return_schedule(
        db_session, AGENCY_ID, tenancy.id, date(2026, 3, 31)
    )

    with pytest.raises(OverpaymentError) as exc_info:
        await payment_ledger.record_payment(
            db_session, AGENCY_ID, refund_line.id, Decimal("-600.00"), date(2026, 4, 10), TODAY
        )
    assert "Refund amount" in exc_info.value.message

    schedule, _ = await payment_ledger.record_payment(
        db_session, AGENCY_ID, refund_line.id, Decimal("-500.00"), date(2026, 4, 10), TODAY
    )
    assert schedule.status == ScheduleStatus.PAID


@pytest.mark.asyncio
async def test_mark_overdue_is_idempotent(db_session, schedule_lines):
    tenancy, lines = schedule_lines
    paid_line = _rent(lines, date(2025, 10, 1))
    await payment_ledger.record_payment(db_session, AGENCY_ID, paid_line.id, Decimal("433.33"), TODAY, TODAY)
    await db_session.commit()

    # Deposit (due 24 Sep) is the only open line in the past
    assert await payment_ledger.mark_overdue_schedules(db_session, AGENCY_ID, TODAY) == 1
    assert await payment_ledger.mark_overdue_schedules(db_session, AGENCY_ID, TODAY) == 0
    await db_session.commit()

    summary = await payment_ledger.tenancy_payment_summary(db_session, AGENCY_ID, tenancy.id)
    assert summary.status_counts["overdue"] == 1
    assert summary.status_counts["paid"] == 1
    assert summary.status_counts["pending"] == 5
    assert summary.total_paid == Decimal("433.33")
    assert summary.total_outstanding == summary.total_due - Decimal("433.33")


@pytest.mark.asyncio
async def test_tenancy_schedules_include_amount_paid(db_session, schedule_lines):
    tenancy, lines = schedule_lines
    line = _rent(lines, date(2025, 12, 1))
    await payment_ledger.record_payment(db_session, AGENCY_ID, line.id, Decimal("50.00"), TODAY, TODAY)
    await db_session.commit()

    rows = await payment_ledger.tenancy_schedules(db_session, AGENCY_ID, tenancy.id)

    assert [s.due_date for s, _ in rows] == sorted(s.due_date for s, _ in rows)
    paid = {s.id: amount for s, amount in rows}
    assert paid[line.id] == Decimal("50.00")
    assert paid[lines[0].id] == Decimal("0.00")


@pytest.mark.asyncio
async def test_manual_schedule_lifecycle(db_session, schedule_lines):
    tenancy, lines = schedule_lines
    member_id = _rent(lines, date(2025, 10, 1)).tenancy_member_id

    manual = await payment_ledger.create_manual_schedule(
        db_session, AGENCY_ID, tenancy.id, member_id, date(2025, 12, 15),
        Decimal("45.00"), PaymentType.UTILITIES, TODAY, description="Broadband",
    )
    assert manual.schedule_type == ScheduleType.MANUAL
    assert manual.status == ScheduleStatus.PENDING

    await payment_ledger.record_payment(db_session, AGENCY_ID, manual.id, Decimal("30.00"), TODAY, TODAY)
    with pytest.raises(DomainValidationError):
        await payment_ledger.update_schedule(
            db_session, AGENCY_ID, manual.id, Decimal("20.00"), date(2025, 12, 15),
            PaymentType.UTILITIES, "Broadband", TODAY,
        )
    with pytest.raises(DomainValidationError):
        await payment_ledger.delete_schedule(db_session, AGENCY_ID, manual.id)

    updated = await payment_ledger.update_schedule(
        db_session, AGENCY_ID, manual.id, Decimal("30.00"), date(2025, 12, 15),
        PaymentType.UTILITIES, "Broadband (Dec)", TODAY,
    )
    assert updated.status == ScheduleStatus.PAID
    assert updated.description == "Broadband (Dec)"


@pytest.mark.asyncio
async def test_editing_automated_line_makes_it_manual(db_session, schedule_lines):
    _, lines = schedule_lines
    line = _rent(lines, date(2026, 1, 1))

    updated = await payment_ledger.update_schedule(
        db_session, AGENCY_ID, line.id, Decimal("400.00"), date(2026, 1, 5),
        PaymentType.RENT, "Rent - January 2026 (discounted)", TODAY,
    )
    assert updated.schedule_type == ScheduleType.MANUAL

    await payment_ledger.delete_schedule(db_session, AGENCY_ID, line.id)
    await db_session.commit()
    with pytest.raises(ResourceNotFoundError):
        await payment_ledger.get_schedule(db_session, AGENCY_ID, line.id)


@pytest.mark.asyncio
async def test_manual_schedule_member_must_belong_to_tenancy(db_session, schedule_lines):
    tenancy, _ = schedule_lines
    with pytest.raises(ResourceNotFoundError):
        await payment_ledger.create_manual_schedule(
            db_session, AGENCY_ID, tenancy.id, 9999, date(2025, 12, 15),
            Decimal("45.00"), PaymentType.FEES, TODAY,
        )


@pytest.mark.asyncio
async def test_schedule_breakdown_for_rent_line(db_session, schedule_lines):
    _, lines = schedule_lines
    line = _rent(lines, date(2025, 11, 1))

    breakdown = await payment_ledger.schedule_breakdown(db_session, AGENCY_ID, line.id)
    assert breakdown.is_full_month
    assert breakdown.period_end == date(2025, 11, 30)

    deposit = next(line for line in lines if line.payment_type == PaymentType.DEPOSIT)
    with pytest.raises(DomainValidationError):
        await payment_ledger.schedule_breakdown(db_session, AGENCY_ID, deposit.id)
