"""
Payment API Endpoints.

Recording money against schedule lines, reverting it, and maintaining
manual lines. Every change recomputes the line's status from its
payments.
"""

from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.ext.asyncio import AsyncSession
from dataclasses import asdict
from typing import List

from backend.app.db.session import get_db
from backend.app.core.clock import today
from backend.app.core.guards import require_staff
from backend.app.domain.ledger import payment_ledger
from backend.app.schemas.payment import (
    ManualScheduleCreate,
    PaymentBreakdownResponse,
    PaymentRecordCreate,
    PaymentRecordResult,
    PaymentResponse,
    PaymentRevertResult,
    PaymentScheduleResponse,
    ScheduleUpdate,
)
from backend.app.services.audit import log_user_action, AuditAction

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("/manual", response_model=PaymentScheduleResponse, status_code=status.HTTP_201_CREATED)
async def create_manual_schedule(
    payload: ManualScheduleCreate,
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    schedule = await payment_ledger.create_manual_schedule(
        db,
        agency_id=int(current_user["agency_id"]),
        tenancy_id=payload.tenancy_id,
        member_id=payload.member_id,
        due_date=payload.due_date,
        amount_due=payload.amount_due,
        payment_type=payload.payment_type,
        today=today(),
        description=payload.description,
    )
    await log_user_action(
        db, current_user, AuditAction.PAYMENT_SCHEDULE_CREATED, "payment_schedule", schedule.id,
        metadata={"tenancy_id": payload.tenancy_id, "amount_due": str(schedule.amount_due)},
    )
    await db.commit()
    await db.refresh(schedule)
    return schedule


@router.get("/{schedule_id}/breakdown", response_model=PaymentBreakdownResponse)
async def get_payment_breakdown(
    schedule_id: int = Path(...),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    """How a rent line maps onto calendar months."""
    breakdown = await payment_ledger.schedule_breakdown(db, int(current_user["agency_id"]), schedule_id)
    return PaymentBreakdownResponse(schedule_id=schedule_id, **asdict(breakdown))


@router.get("/{schedule_id}/history", response_model=List[PaymentResponse])
async def get_payment_history(
    schedule_id: int = Path(...),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await payment_ledger.payment_history(db, int(current_user["agency_id"]), schedule_id)


@router.post("/{schedule_id}/record", response_model=PaymentRecordResult, status_code=status.HTTP_201_CREATED)
async def record_payment(
    payload: PaymentRecordCreate,
    schedule_id: int = Path(...),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    """
    Record a payment against a line.

    Rejected with 400 when it would take the line past its amount due.
    """
    schedule, payment = await payment_ledger.record_payment(
        db,
        agency_id=int(current_user["agency_id"]),
        schedule_id=schedule_id,
        amount=payload.amount,
        paid_date=payload.paid_date,
        today=today(),
        reference=payload.reference,
    )
    await log_user_action(
        db, current_user, AuditAction.PAYMENT_RECORDED, "payment_schedule", schedule.id,
        metadata={"payment_id": payment.id, "amount": str(payment.amount), "status": schedule.status.value},
    )
    await db.commit()
    await db.refresh(schedule)
    await db.refresh(payment)
    return PaymentRecordResult(
        schedule=PaymentScheduleResponse.model_validate(schedule),
        payment=PaymentResponse.model_validate(payment),
    )


@router.post("/{schedule_id}/revert", response_model=PaymentRevertResult)
async def revert_payment(
    schedule_id: int = Path(...),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    """Remove every payment on a line."""
    schedule, removed = await payment_ledger.revert_payment(
        db, int(current_user["agency_id"]), schedule_id, today()
    )
    await log_user_action(
        db, current_user, AuditAction.PAYMENT_REVERTED, "payment_schedule", schedule.id,
        metadata={"payments_deleted": removed},
    )
    await db.commit()
    await db.refresh(schedule)
    return PaymentRevertResult(
        schedule=PaymentScheduleResponse.model_validate(schedule),
        payments_deleted=removed,
    )


@router.delete("/{schedule_id}/records/{payment_id}", response_model=PaymentScheduleResponse)
async def delete_single_payment(
    schedule_id: int = Path(...),
    payment_id: int = Path(...),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    schedule = await payment_ledger.delete_single_payment(
        db, int(current_user["agency_id"]), schedule_id, payment_id, today()
    )
    await log_user_action(
        db, current_user, AuditAction.PAYMENT_DELETED, "payment_schedule", schedule.id,
        metadata={"payment_id": payment_id},
    )
    await db.commit()
    await db.refresh(schedule)
    return schedule


@router.put("/{schedule_id}", response_model=PaymentScheduleResponse)
async def update_schedule(
    payload: ScheduleUpdate,
    schedule_id: int = Path(...),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    schedule = await payment_ledger.update_schedule(
        db,
        agency_id=int(current_user["agency_id"]),
        schedule_id=schedule_id,
        amount_due=payload.amount_due,
        due_date=payload.due_date,
        payment_type=payload.payment_type,
        description=payload.description,
        today=today(),
    )
    await log_user_action(
        db, current_user, AuditAction.PAYMENT_SCHEDULE_UPDATED, "payment_schedule", schedule.id,
        metadata={"amount_due": str(schedule.amount_due), "due_date": schedule.due_date.isoformat()},
    )
    await db.commit()
    await db.refresh(schedule)
    return schedule


@router.delete("/{schedule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_schedule(
    schedule_id: int = Path(...),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    """Delete an unpaid line."""
    await payment_ledger.delete_schedule(db, int(current_user["agency_id"]), schedule_id)
    await log_user_action(db, current_user, AuditAction.PAYMENT_SCHEDULE_DELETED, "payment_schedule", schedule_id)
    await db.commit()
