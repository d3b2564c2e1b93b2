"""
Holding Deposit API Endpoints.

Staff record holding deposits, move them through their lifecycle and
check whether a bedroom is currently reserved.
"""

from fastapi import APIRouter, BackgroundTasks, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from typing import List, Optional

from backend.app.db.session import get_db, get_session_factory
from backend.app.core.clock import utcnow
from backend.app.core.guards import require_staff
from backend.app.domain.deposits.holding_deposits import HoldingDepositStateMachine
from backend.app.domain.deposits.reservation_guard import get_active_reservation
from backend.app.models.application import Application
from backend.app.models.deposit_enums import DepositStatus
from backend.app.schemas.holding_deposit import (
    ActiveReservationResponse,
    BedroomReservationResponse,
    DepositApply,
    DepositPaymentRecord,
    DepositStatusUpdate,
    HoldingDepositAwaitingCreate,
    HoldingDepositCreate,
    HoldingDepositResponse,
)
from backend.app.services.audit import log_user_action, AuditAction
from backend.app.services.notification_service import notify_application_approved

router = APIRouter(prefix="/holding-deposits", tags=["Holding Deposits"])
bedroom_router = APIRouter(prefix="/bedrooms", tags=["Holding Deposits"])


@router.post("", response_model=HoldingDepositResponse, status_code=status.HTTP_201_CREATED)
async def create_holding_deposit(
    payload: HoldingDepositCreate,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """
    Record a holding deposit and approve the application.

    The deposit, the approval and the audit entry commit together; the
    applicant is notified afterwards on a best-effort basis.
    """
    agency_id = int(current_user["agency_id"])
    deposit = await HoldingDepositStateMachine.create_deposit(
        db,
        agency_id=agency_id,
        application_id=payload.application_id,
        amount=payload.amount,
        initial_status=DepositStatus.HELD,
        now=utcnow(),
        actor_id=current_user["user_id"],
        date_received=payload.date_received,
        payment_reference=payload.payment_reference,
        bedroom_id=payload.bedroom_id,
        property_id=payload.property_id,
        reservation_days=payload.reservation_days,
    )
    await log_user_action(
        db, current_user, AuditAction.HOLDING_DEPOSIT_CREATED, "holding_deposit", deposit.id,
        metadata={"application_id": deposit.application_id, "amount": str(deposit.amount), "bedroom_id": deposit.bedroom_id},
    )
    await log_user_action(db, current_user, AuditAction.APPLICATION_APPROVED, "application", deposit.application_id)

    application = await db.get(Application, deposit.application_id)
    await db.commit()
    await db.refresh(deposit)

    background_tasks.add_task(
        notify_application_approved,
        session_factory,
        agency_id=agency_id,
        user_id=application.user_id,
        application_id=application.id,
        deposit_id=deposit.id,
    )
    return deposit


@router.post("/awaiting-payment", response_model=HoldingDepositResponse, status_code=status.HTTP_201_CREATED)
async def create_awaiting_deposit(
    payload: HoldingDepositAwaitingCreate,
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    """Request a holding deposit for an application; the reservation starts once it is paid."""
    deposit = await HoldingDepositStateMachine.create_deposit(
        db,
        agency_id=int(current_user["agency_id"]),
        application_id=payload.application_id,
        amount=payload.amount,
        initial_status=DepositStatus.AWAITING_PAYMENT,
        now=utcnow(),
        actor_id=current_user["user_id"],
        bedroom_id=payload.bedroom_id,
        property_id=payload.property_id,
        reservation_days=payload.reservation_days,
    )
    await log_user_action(
        db, current_user, AuditAction.HOLDING_DEPOSIT_CREATED, "holding_deposit", deposit.id,
        metadata={"application_id": deposit.application_id, "amount": str(deposit.amount), "status": deposit.status.value},
    )
    await db.commit()
    await db.refresh(deposit)
    return deposit


@router.get("", response_model=List[HoldingDepositResponse])
async def list_holding_deposits(
    deposit_status: Optional[DepositStatus] = Query(None, alias="status"),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await HoldingDepositStateMachine.list_deposits(db, int(current_user["agency_id"]), deposit_status)


@router.get("/application/{application_id}", response_model=Optional[HoldingDepositResponse])
async def get_deposit_for_application(
    application_id: int = Path(...),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    """Latest deposit of an application, or null."""
    return await HoldingDepositStateMachine.get_by_application(db, int(current_user["agency_id"]), application_id)


@router.get("/{deposit_id}", response_model=HoldingDepositResponse)
async def get_holding_deposit(
    deposit_id: int = Path(...),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await HoldingDepositStateMachine.get_deposit(db, int(current_user["agency_id"]), deposit_id)


@router.patch("/{deposit_id}/record-payment", response_model=HoldingDepositResponse)
async def record_deposit_payment(
    payload: DepositPaymentRecord,
    deposit_id: int = Path(...),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    deposit = await HoldingDepositStateMachine.record_payment(
        db,
        agency_id=int(current_user["agency_id"]),
        deposit_id=deposit_id,
        date_received=payload.date_received,
        now=utcnow(),
        actor_id=current_user["user_id"],
        payment_reference=payload.payment_reference,
    )
    await log_user_action(
        db, current_user, AuditAction.HOLDING_DEPOSIT_PAYMENT_RECORDED, "holding_deposit", deposit.id,
        metadata={"date_received": payload.date_received.isoformat()},
    )
    await db.commit()
    await db.refresh(deposit)
    return deposit


@router.patch("/{deposit_id}/undo-payment", response_model=HoldingDepositResponse)
async def undo_deposit_payment(
    deposit_id: int = Path(...),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    deposit = await HoldingDepositStateMachine.undo_payment(
        db, int(current_user["agency_id"]), deposit_id, utcnow(), actor_id=current_user["user_id"]
    )
    await log_user_action(db, current_user, AuditAction.HOLDING_DEPOSIT_PAYMENT_UNDONE, "holding_deposit", deposit.id)
    await db.commit()
    await db.refresh(deposit)
    return deposit


@router.patch("/{deposit_id}/status", response_model=HoldingDepositResponse)
async def update_deposit_status(
    payload: DepositStatusUpdate,
    deposit_id: int = Path(...),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    """Refund or forfeit a deposit."""
    deposit = await HoldingDepositStateMachine.update_status(
        db,
        agency_id=int(current_user["agency_id"]),
        deposit_id=deposit_id,
        status=payload.status,
        now=utcnow(),
        actor_id=current_user["user_id"],
        notes=payload.notes,
    )
    await log_user_action(
        db, current_user, AuditAction.HOLDING_DEPOSIT_STATUS_CHANGED, "holding_deposit", deposit.id,
        metadata={"status": deposit.status.value},
    )
    await db.commit()
    await db.refresh(deposit)
    return deposit


@router.post("/{deposit_id}/apply", response_model=HoldingDepositResponse)
async def apply_deposit_to_tenancy(
    payload: DepositApply,
    deposit_id: int = Path(...),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    deposit = await HoldingDepositStateMachine.apply_to_tenancy(
        db,
        agency_id=int(current_user["agency_id"]),
        deposit_id=deposit_id,
        tenancy_id=payload.tenancy_id,
        status=payload.status,
        now=utcnow(),
        actor_id=current_user["user_id"],
    )
    await log_user_action(
        db, current_user, AuditAction.HOLDING_DEPOSIT_APPLIED, "holding_deposit", deposit.id,
        metadata={"tenancy_id": payload.tenancy_id, "status": deposit.status.value},
    )
    await db.commit()
    await db.refresh(deposit)
    return deposit


@bedroom_router.get("/{bedroom_id}/reservation", response_model=BedroomReservationResponse)
async def get_bedroom_reservation(
    bedroom_id: int = Path(...),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    reservation = await get_active_reservation(db, int(current_user["agency_id"]), bedroom_id, utcnow())
    return BedroomReservationResponse(
        bedroom_id=bedroom_id,
        reserved=reservation is not None,
        reservation=ActiveReservationResponse.model_validate(reservation) if reservation else None,
    )
