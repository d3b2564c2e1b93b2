"""
Holding Deposit State Machine (Domain Logic).

Lifecycle:
    awaiting_payment -> held -> applied_to_rent | applied_to_deposit
    awaiting_payment | held -> refunded | forfeited
    held -> awaiting_payment (undo payment)

Every transition goes through TRANSITIONS; anything else is rejected with
the current and required statuses. Functions flush and leave the commit
to the caller, so a deposit and its application approval land together.
"""

import logging
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.clock import start_of_day
from backend.app.core.exceptions import (
    DomainValidationError,
    InvalidStateTransitionError,
    ReservationConflictError,
    ResourceNotFoundError,
)
from backend.app.domain.deposits.reservation_guard import ensure_bedroom_available, get_active_reservation
from backend.app.domain.ledger.payment_ledger import apply_rent_credit
from backend.app.domain.rent.proration import to_money
from backend.app.models.application import Application
from backend.app.models.deposit_enums import DepositStatus
from backend.app.models.holding_deposit import HoldingDeposit
from backend.app.models.property import Bedroom, Property
from backend.app.models.tenancy import Tenancy
from backend.app.models.tenancy_enums import ApplicationStatus

logger = logging.getLogger(__name__)

MIN_RESERVATION_DAYS = 1
MAX_RESERVATION_DAYS = 365

TRANSITIONS = {
    DepositStatus.AWAITING_PAYMENT: frozenset({
        DepositStatus.HELD,
        DepositStatus.REFUNDED,
        DepositStatus.FORFEITED,
    }),
    DepositStatus.HELD: frozenset({
        DepositStatus.AWAITING_PAYMENT,
        DepositStatus.APPLIED_TO_RENT,
        DepositStatus.APPLIED_TO_DEPOSIT,
        DepositStatus.REFUNDED,
        DepositStatus.FORFEITED,
    }),
}

CLOSING_STATUSES = (DepositStatus.REFUNDED, DepositStatus.FORFEITED)
APPLIED_STATUSES = (DepositStatus.APPLIED_TO_RENT, DepositStatus.APPLIED_TO_DEPOSIT)


def allowed_sources(target: DepositStatus) -> List[str]:
    return [source.value for source, targets in TRANSITIONS.items() if target in targets]


def reservation_expiry(date_received: date, reservation_days: Optional[int]) -> Optional[datetime]:
    if not reservation_days:
        return None
    return start_of_day(date_received) + timedelta(days=reservation_days)


def validate_reservation_days(reservation_days: Optional[int]) -> None:
    if reservation_days is None:
        return
    if not MIN_RESERVATION_DAYS <= reservation_days <= MAX_RESERVATION_DAYS:
        raise DomainValidationError(
            f"Reservation days must be between {MIN_RESERVATION_DAYS} and {MAX_RESERVATION_DAYS}",
            field="reservation_days",
        )


class HoldingDepositStateMachine:

    @staticmethod
    def check_transition(deposit: HoldingDeposit, target: DepositStatus, action: str):
        if target not in TRANSITIONS.get(deposit.status, ()):
            raise InvalidStateTransitionError(
                entity="holding deposit",
                current_status=deposit.status.value,
                required_status=allowed_sources(target),
                action=action,
            )

    @staticmethod
    def transition(deposit: HoldingDeposit, target: DepositStatus, action: str, actor_id: Optional[int], now: datetime):
        HoldingDepositStateMachine.check_transition(deposit, target, action)
        deposit.status = target
        deposit.status_changed_at = now
        deposit.status_changed_by = actor_id

    @staticmethod
    async def get_deposit(db: AsyncSession, agency_id: int, deposit_id: int, for_update: bool = False) -> HoldingDeposit:
        stmt = select(HoldingDeposit).where(
            HoldingDeposit.id == deposit_id,
            HoldingDeposit.agency_id == agency_id,
        )
        if for_update:
            stmt = stmt.with_for_update()
        deposit = await db.scalar(stmt)
        if not deposit:
            raise ResourceNotFoundError("Holding deposit", deposit_id)
        return deposit

    @staticmethod
    async def list_deposits(db: AsyncSession, agency_id: int, status: Optional[DepositStatus] = None) -> List[HoldingDeposit]:
        stmt = select(HoldingDeposit).where(HoldingDeposit.agency_id == agency_id)
        if status is not None:
            stmt = stmt.where(HoldingDeposit.status == status)
        result = await db.execute(stmt.order_by(HoldingDeposit.created_at.desc(), HoldingDeposit.id.desc()))
        return list(result.scalars().all())

    @staticmethod
    async def get_by_application(db: AsyncSession, agency_id: int, application_id: int) -> Optional[HoldingDeposit]:
        """Most recent deposit of an application."""
        return await db.scalar(
            select(HoldingDeposit)
            .where(
                HoldingDeposit.application_id == application_id,
                HoldingDeposit.agency_id == agency_id,
            )
            .order_by(HoldingDeposit.created_at.desc(), HoldingDeposit.id.desc())
            .limit(1)
        )

    @staticmethod
    async def _validate_location(db: AsyncSession, agency_id: int, bedroom_id: Optional[int], property_id: Optional[int]):
        if bedroom_id is not None:
            stmt = select(Bedroom).where(Bedroom.id == bedroom_id, Bedroom.agency_id == agency_id)
            if property_id is not None:
                stmt = stmt.where(Bedroom.property_id == property_id)
            bedroom = await db.scalar(stmt)
            if not bedroom:
                if property_id is not None:
                    raise ResourceNotFoundError("Bedroom", bedroom_id, message="Bedroom not found in the specified property")
                raise ResourceNotFoundError("Bedroom", bedroom_id)
            return bedroom.property_id
        if property_id is not None:
            found = await db.scalar(
                select(Property.id).where(Property.id == property_id, Property.agency_id == agency_id)
            )
            if not found:
                raise ResourceNotFoundError("Property", property_id)
        return property_id

    @staticmethod
    async def _flush_reservation(db: AsyncSession, agency_id: int, deposit: HoldingDeposit, now: datetime):
        bedroom_id = deposit.bedroom_id
        try:
            await db.flush()
        except IntegrityError:
            # Another transaction reserved the bedroom between the check and this write
            if bedroom_id is None:
                raise
            logger.warning("Concurrent reservation detected on bedroom %s", bedroom_id)
            await db.rollback()
            holder = await get_active_reservation(db, agency_id, bedroom_id, now)
            if holder is None:
                raise ReservationConflictError(bedroom_id=bedroom_id)
            raise ReservationConflictError(
                bedroom_id=bedroom_id,
                applicant_name=holder.applicant_name,
                expires_at=holder.reservation_expires_at,
                deposit_id=holder.deposit_id,
            )

    @staticmethod
    async def create_deposit(
        db: AsyncSession,
        agency_id: int,
        application_id: int,
        amount,
        initial_status: DepositStatus,
        now: datetime,
        actor_id: Optional[int] = None,
        date_received: Optional[date] = None,
        payment_reference: Optional[str] = None,
        bedroom_id: Optional[int] = None,
        property_id: Optional[int] = None,
        reservation_days: Optional[int] = None,
    ) -> HoldingDeposit:
        """
        Create a holding deposit.

        ``held`` is the approval flow: the money has been received, the
        application must be submitted and is approved in the same unit of
        work. ``awaiting_payment`` is the application-time flow: no payment
        yet, so no reservation window starts.

        Raises:
            DomainValidationError: bad amount, date or reservation days
            ResourceNotFoundError: application, bedroom or property not in scope
            ReservationConflictError: the bedroom is already reserved
        """
        if initial_status not in (DepositStatus.HELD, DepositStatus.AWAITING_PAYMENT):
            raise DomainValidationError("Deposits start as 'held' or 'awaiting_payment'", field="status")

        amount = to_money(amount)
        if amount <= Decimal("0"):
            raise DomainValidationError("Amount must be a valid number greater than 0", field="amount")
        if initial_status == DepositStatus.HELD and date_received is None:
            raise DomainValidationError("Date received is required", field="date_received")
        validate_reservation_days(reservation_days)

        application = await db.scalar(
            select(Application).where(Application.id == application_id, Application.agency_id == agency_id)
        )
        if not application:
            raise ResourceNotFoundError("Application", application_id)

        if initial_status == DepositStatus.HELD and application.status != ApplicationStatus.SUBMITTED:
            raise InvalidStateTransitionError(
                entity="application",
                current_status=application.status.value,
                required_status=[ApplicationStatus.SUBMITTED.value],
                action="record holding deposit",
            )

        existing = await HoldingDepositStateMachine.get_by_application(db, agency_id, application_id)
        if existing and existing.status == DepositStatus.HELD:
            raise DomainValidationError("This application already has an active holding deposit")
        if existing and initial_status == DepositStatus.AWAITING_PAYMENT and existing.status == DepositStatus.AWAITING_PAYMENT:
            raise DomainValidationError("This application already has a holding deposit awaiting payment")

        property_id = await HoldingDepositStateMachine._validate_location(db, agency_id, bedroom_id, property_id)

        if bedroom_id is not None:
            await ensure_bedroom_available(db, agency_id, bedroom_id, now)

        deposit = HoldingDeposit(
            agency_id=agency_id,
            application_id=application_id,
            amount=amount,
            payment_reference=payment_reference,
            date_received=date_received if initial_status == DepositStatus.HELD else None,
            bedroom_id=bedroom_id,
            property_id=property_id,
            reservation_days=reservation_days,
            reservation_released=False,
            status=initial_status,
        )
        if initial_status == DepositStatus.HELD:
            deposit.reservation_expires_at = reservation_expiry(date_received, reservation_days)
            deposit.status_changed_at = now
            deposit.status_changed_by = actor_id
            application.status = ApplicationStatus.APPROVED

        db.add(deposit)
        await HoldingDepositStateMachine._flush_reservation(db, agency_id, deposit, now)

        logger.info(
            "Holding deposit %s created for application %s as %s (bedroom=%s)",
            deposit.id, application_id, initial_status.value, bedroom_id,
        )
        return deposit

    @staticmethod
    async def record_payment(
        db: AsyncSession,
        agency_id: int,
        deposit_id: int,
        date_received: date,
        now: datetime,
        actor_id: Optional[int] = None,
        payment_reference: Optional[str] = None,
    ) -> HoldingDeposit:
        """Money received for an awaiting deposit: it becomes held and its reservation window starts."""
        if date_received is None:
            raise DomainValidationError("Date received is required", field="date_received")

        deposit = await HoldingDepositStateMachine.get_deposit(db, agency_id, deposit_id, for_update=True)
        HoldingDepositStateMachine.check_transition(deposit, DepositStatus.HELD, "record payment")

        if deposit.bedroom_id is not None:
            await ensure_bedroom_available(db, agency_id, deposit.bedroom_id, now, exclude_deposit_id=deposit.id)

        HoldingDepositStateMachine.transition(deposit, DepositStatus.HELD, "record payment", actor_id, now)
        deposit.payment_reference = payment_reference
        deposit.date_received = date_received
        deposit.reservation_expires_at = reservation_expiry(date_received, deposit.reservation_days)
        deposit.reservation_released = False
        await HoldingDepositStateMachine._flush_reservation(db, agency_id, deposit, now)
        return deposit

    @staticmethod
    async def undo_payment(
        db: AsyncSession, agency_id: int, deposit_id: int, now: datetime, actor_id: Optional[int] = None
    ) -> HoldingDeposit:
        deposit = await HoldingDepositStateMachine.get_deposit(db, agency_id, deposit_id, for_update=True)
        HoldingDepositStateMachine.transition(deposit, DepositStatus.AWAITING_PAYMENT, "undo payment", actor_id, now)
        deposit.payment_reference = None
        deposit.date_received = None
        deposit.reservation_expires_at = None
        await db.flush()
        return deposit

    @staticmethod
    async def update_status(
        db: AsyncSession,
        agency_id: int,
        deposit_id: int,
        status: DepositStatus,
        now: datetime,
        actor_id: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> HoldingDeposit:
        """Close a deposit out as refunded or forfeited. Existing notes are kept when none are given."""
        if status not in CLOSING_STATUSES:
            raise DomainValidationError(
                f"Invalid status. Must be one of: {', '.join(s.value for s in CLOSING_STATUSES)}",
                field="status",
            )
        deposit = await HoldingDepositStateMachine.get_deposit(db, agency_id, deposit_id, for_update=True)
        HoldingDepositStateMachine.transition(deposit, status, f"mark deposit {status.value}", actor_id, now)
        if notes is not None:
            deposit.notes = notes
        await db.flush()
        return deposit

    @staticmethod
    async def apply_to_tenancy(
        db: AsyncSession,
        agency_id: int,
        deposit_id: int,
        tenancy_id: int,
        status: DepositStatus,
        now: datetime,
        actor_id: Optional[int] = None,
    ) -> HoldingDeposit:
        """
        Consume a held deposit against a tenancy.

        Applied to rent, it reduces the member's first rent line if the
        schedule already exists; otherwise the credit is taken when the
        schedule is generated.
        """
        if status not in APPLIED_STATUSES:
            raise DomainValidationError(
                f"Invalid status. Must be one of: {', '.join(s.value for s in APPLIED_STATUSES)}",
                field="status",
            )
        tenancy = await db.scalar(
            select(Tenancy.id).where(Tenancy.id == tenancy_id, Tenancy.agency_id == agency_id)
        )
        if not tenancy:
            raise ResourceNotFoundError("Tenancy", tenancy_id)

        deposit = await HoldingDepositStateMachine.get_deposit(db, agency_id, deposit_id, for_update=True)
        HoldingDepositStateMachine.transition(deposit, status, "apply deposit to tenancy", actor_id, now)
        deposit.applied_to_tenancy_id = tenancy_id
        await db.flush()

        if status == DepositStatus.APPLIED_TO_RENT:
            await apply_rent_credit(db, agency_id, tenancy_id, now.date(), deposit_id=deposit.id)
        return deposit
