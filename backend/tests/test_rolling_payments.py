"""
Tests for next-month rent generation on rolling tenancies.
"""

import pytest
from datetime import date
from decimal import Decimal
from sqlalchemy import select

from backend.app.domain.rent.rolling_payments import generate_rolling_monthly_payments, monthly_payment
from backend.app.domain.rent.schedule_generator import PaymentScheduleGenerator
from backend.app.models.payment_schedule import PaymentSchedule
from backend.app.models.tenancy_enums import TenancyStatus

from conftest import AGENCY_ID


async def _rent_lines(db_session, tenancy_id):
    result = await db_session.execute(
        select(PaymentSchedule)
        .where(PaymentSchedule.tenancy_id == tenancy_id)
        .order_by(PaymentSchedule.due_date)
    )
    return result.scalars().all()


def test_monthly_payment_clipped_to_tenancy_end():
    line = monthly_payment(date(2025, 9, 1), date(2025, 6, 1), date(2025, 9, 15), 100)
    assert line.amount_due == Decimal("216.67")
    assert line.covers_to == date(2025, 9, 15)


def test_monthly_payment_after_end_is_none():
    assert monthly_payment(date(2025, 10, 1), date(2025, 6, 1), date(2025, 9, 15), 100) is None


@pytest.mark.asyncio
async def test_first_payment_from_schedule_is_not_duplicated(db_session, make_tenancy):
    tenancy = await make_tenancy(date(2025, 6, 10), is_rolling_monthly=True)
    await PaymentScheduleGenerator.generate_payment_schedule(db_session, AGENCY_ID, tenancy.id)
    await db_session.commit()

    outcome = await generate_rolling_monthly_payments(db_session, AGENCY_ID, date(2025, 6, 20))
    await db_session.commit()

    assert outcome.target_month == date(2025, 7, 1)
    assert outcome.payments_created == 0
    assert outcome.payments_skipped == 1
    assert len(await _rent_lines(db_session, tenancy.id)) == 1


@pytest.mark.asyncio
async def test_creates_first_payment_when_schedule_missing(db_session, make_tenancy):
    tenancy = await make_tenancy(date(2025, 6, 10), is_rolling_monthly=True)

    outcome = await generate_rolling_monthly_payments(db_session, AGENCY_ID, date(2025, 6, 20))
    await db_session.commit()

    assert outcome.payments_created == 1
    [line] = await _rent_lines(db_session, tenancy.id)
    assert line.due_date == date(2025, 7, 1)
    assert line.amount_due == Decimal("736.66")
    assert line.is_rolling_first_payment_with_partial


@pytest.mark.asyncio
async def test_next_month_created_once(db_session, make_tenancy):
    tenancy = await make_tenancy(date(2025, 6, 10), is_rolling_monthly=True)
    await PaymentScheduleGenerator.generate_payment_schedule(db_session, AGENCY_ID, tenancy.id)
    await db_session.commit()

    first = await generate_rolling_monthly_payments(db_session, AGENCY_ID, date(2025, 7, 15))
    await db_session.commit()
    second = await generate_rolling_monthly_payments(db_session, AGENCY_ID, date(2025, 7, 28))
    await db_session.commit()

    assert first.payments_created == 1
    assert second.payments_created == 0
    assert second.payments_skipped == 1

    lines = await _rent_lines(db_session, tenancy.id)
    assert [line.description for line in lines] == [
        "Rent - June 2025 (partial) & July 2025",
        "Rent - August 2025",
    ]
    assert lines[1].amount_due == Decimal("433.33")


@pytest.mark.asyncio
async def test_ineligible_tenancies_are_ignored(db_session, make_tenancy):
    await make_tenancy(date(2025, 6, 1), is_rolling_monthly=True, status=TenancyStatus.PENDING)
    await make_tenancy(date(2025, 6, 1), is_rolling_monthly=True, auto_generate_payments=False)
    await make_tenancy(date(2025, 6, 1), is_rolling_monthly=True, manage_rent=False)
    await make_tenancy(date(2025, 6, 1), date(2025, 7, 31), is_rolling_monthly=True)
    await make_tenancy(date(2025, 6, 1), date(2026, 5, 31))

    outcome = await generate_rolling_monthly_payments(db_session, AGENCY_ID, date(2025, 8, 10))

    assert outcome.tenancies_processed == 0
    assert outcome.payments_created == 0


@pytest.mark.asyncio
async def test_members_without_rent_are_skipped(db_session, make_tenancy):
    tenancy = await make_tenancy(
        date(2025, 6, 1),
        is_rolling_monthly=True,
        members=[{"rent_pppw": Decimal("0.00")}, {"rent_pppw": Decimal("120.00")}],
    )

    outcome = await generate_rolling_monthly_payments(db_session, AGENCY_ID, date(2025, 8, 10))
    await db_session.commit()

    assert outcome.tenancies_processed == 1
    assert outcome.payments_created == 1
    [line] = await _rent_lines(db_session, tenancy.id)
    assert line.amount_due == Decimal("520.00")
