"""
Tenancy Payment API Endpoints.

Schedule generation, the payment view of a tenancy and deposit returns.
"""

from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import timedelta
from typing import List

from backend.app.core.clock import today
from backend.app.db.session import get_db
from backend.app.core.guards import require_staff
from backend.app.domain.ledger import payment_ledger
from backend.app.domain.rent.schedule_generator import (
    DEPOSIT_RETURN_DAYS_AFTER_KEYS,
    PaymentScheduleGenerator,
)
from backend.app.schemas.payment import PaymentScheduleResponse, PaymentSummaryResponse
from backend.app.schemas.tenancy import (
    DepositReturnCreate,
    DepositReturnResponse,
    ScheduleGenerationResponse,
)
from backend.app.services.audit import log_user_action, AuditAction

router = APIRouter(prefix="/tenancies", tags=["Tenancy Payments"])


def _with_paid(schedule, paid) -> PaymentScheduleResponse:
    response = PaymentScheduleResponse.model_validate(schedule)
    response.amount_paid = paid
    return response


@router.post(
    "/{tenancy_id}/payment-schedule",
    response_model=ScheduleGenerationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def generate_payment_schedule(
    tenancy_id: int = Path(...),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    """
    Generate the payment schedule of a tenancy.

    Holding deposits already applied to rent reduce each member's first
    rent line in the same transaction.
    """
    agency_id = int(current_user["agency_id"])
    schedules = await PaymentScheduleGenerator.generate_payment_schedule(db, agency_id, tenancy_id)
    credits = await payment_ledger.apply_rent_credit(db, agency_id, tenancy_id, today())

    await log_user_action(
        db, current_user, AuditAction.PAYMENT_SCHEDULE_GENERATED, "tenancy", tenancy_id,
        metadata={"lines_created": len(schedules), "rent_credits_applied": credits},
    )
    await db.commit()

    return ScheduleGenerationResponse(
        tenancy_id=tenancy_id,
        lines_created=len(schedules),
        rent_credits_applied=credits,
        schedules=[PaymentScheduleResponse.model_validate(s) for s in schedules],
    )


@router.get("/{tenancy_id}/payments", response_model=List[PaymentScheduleResponse])
async def list_tenancy_payments(
    tenancy_id: int = Path(...),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    rows = await payment_ledger.tenancy_schedules(db, int(current_user["agency_id"]), tenancy_id)
    return [_with_paid(schedule, paid) for schedule, paid in rows]


@router.get("/{tenancy_id}/payments/summary", response_model=PaymentSummaryResponse)
async def tenancy_payment_summary(
    tenancy_id: int = Path(...),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    summary = await payment_ledger.tenancy_payment_summary(db, int(current_user["agency_id"]), tenancy_id)
    return PaymentSummaryResponse(
        tenancy_id=tenancy_id,
        total_due=summary.total_due,
        total_paid=summary.total_paid,
        total_outstanding=summary.total_outstanding,
        status_counts=summary.status_counts,
    )


@router.post(
    "/{tenancy_id}/deposit-return",
    response_model=DepositReturnResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_deposit_return(
    payload: DepositReturnCreate,
    tenancy_id: int = Path(...),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    """Schedule the return of each member's deposit after keys come back."""
    schedules = await PaymentScheduleGenerator.create_deposit_return_schedule(
        db, int(current_user["agency_id"]), tenancy_id, payload.key_return_date
    )
    await log_user_action(
        db, current_user, AuditAction.DEPOSIT_RETURN_CREATED, "tenancy", tenancy_id,
        metadata={"key_return_date": payload.key_return_date.isoformat(), "lines_created": len(schedules)},
    )
    await db.commit()

    return DepositReturnResponse(
        tenancy_id=tenancy_id,
        deposit_return_date=payload.key_return_date + timedelta(days=DEPOSIT_RETURN_DAYS_AFTER_KEYS),
        schedules=[PaymentScheduleResponse.model_validate(s) for s in schedules],
    )
