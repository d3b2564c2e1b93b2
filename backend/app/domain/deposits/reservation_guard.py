"""
Reservation Conflict Guard (Domain Logic).

A held holding deposit with a bedroom reserves that bedroom until its
expiry. Expiry is lazy: nothing happens at the expiry instant, the sweep
(or the next check on that bedroom) marks the reservation released.

The check and the write run in the caller's transaction. The partial unique
index on holding_deposits(bedroom_id) closes the window between them.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import ReservationConflictError
from backend.app.models.application import Application
from backend.app.models.deposit_enums import DepositStatus
from backend.app.models.holding_deposit import HoldingDeposit

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActiveReservation:
    deposit_id: int
    bedroom_id: int
    application_id: int
    applicant_name: str
    reservation_expires_at: datetime


async def release_expired_reservations(
    db: AsyncSession, agency_id: int, now: datetime, bedroom_id: Optional[int] = None
) -> int:
    """
    Mark held reservations whose window has passed as released.

    Idempotent: rows already released are not matched again.
    Returns the number of reservations released.
    """
    stmt = (
        update(HoldingDeposit)
        .where(
            HoldingDeposit.agency_id == agency_id,
            HoldingDeposit.status == DepositStatus.HELD,
            HoldingDeposit.reservation_released.is_(False),
            HoldingDeposit.reservation_expires_at.is_not(None),
            HoldingDeposit.reservation_expires_at <= now,
        )
        .values(reservation_released=True)
        .execution_options(synchronize_session="fetch")
    )
    if bedroom_id is not None:
        stmt = stmt.where(HoldingDeposit.bedroom_id == bedroom_id)

    result = await db.execute(stmt)
    await db.flush()
    if result.rowcount:
        logger.info("Released %d expired reservation(s) for agency %s", result.rowcount, agency_id)
    return result.rowcount


async def get_active_reservation(
    db: AsyncSession,
    agency_id: int,
    bedroom_id: int,
    now: datetime,
    exclude_deposit_id: Optional[int] = None,
) -> Optional[ActiveReservation]:
    """The live reservation on a bedroom, with the applicant holding it, or None."""
    stmt = (
        select(HoldingDeposit, Application.first_name, Application.surname)
        .outerjoin(Application, Application.id == HoldingDeposit.application_id)
        .where(
            HoldingDeposit.agency_id == agency_id,
            HoldingDeposit.bedroom_id == bedroom_id,
            HoldingDeposit.status == DepositStatus.HELD,
            HoldingDeposit.reservation_released.is_(False),
            HoldingDeposit.reservation_expires_at > now,
        )
        .order_by(HoldingDeposit.reservation_expires_at.desc())
        .limit(1)
    )
    if exclude_deposit_id is not None:
        stmt = stmt.where(HoldingDeposit.id != exclude_deposit_id)

    row = (await db.execute(stmt)).first()
    if row is None:
        return None

    deposit, first_name, surname = row
    return ActiveReservation(
        deposit_id=deposit.id,
        bedroom_id=deposit.bedroom_id,
        application_id=deposit.application_id,
        applicant_name=" ".join(part for part in (first_name, surname) if part),
        reservation_expires_at=deposit.reservation_expires_at,
    )


async def ensure_bedroom_available(
    db: AsyncSession,
    agency_id: int,
    bedroom_id: int,
    now: datetime,
    exclude_deposit_id: Optional[int] = None,
) -> None:
    """
    Raise ReservationConflictError if another deposit holds the bedroom.

    Expired reservations on this bedroom are released first so they no
    longer occupy the unique index.
    """
    await release_expired_reservations(db, agency_id, now, bedroom_id=bedroom_id)

    blocking = await get_active_reservation(db, agency_id, bedroom_id, now, exclude_deposit_id)
    if blocking:
        logger.info(
            "Bedroom %s already reserved by deposit %s until %s",
            bedroom_id, blocking.deposit_id, blocking.reservation_expires_at,
        )
        raise ReservationConflictError(
            bedroom_id=bedroom_id,
            applicant_name=blocking.applicant_name,
            expires_at=blocking.reservation_expires_at,
            deposit_id=blocking.deposit_id,
        )
