"""
Admin Operations API Endpoints.

Run the maintenance jobs for the caller's agency on demand. The
scheduler runs the same jobs for every agency.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.session import get_db
from backend.app.core.clock import utcnow
from backend.app.core.guards import require_admin
from backend.app.schemas.admin import (
    MarkOverdueResponse,
    ReleaseReservationsResponse,
    RollingPaymentsResponse,
)
from backend.app.services.background_jobs import (
    mark_overdue_job,
    release_reservations_job,
    rolling_payments_job,
)

router = APIRouter(prefix="/admin/ops", tags=["Admin - Ops"])


@router.post("/release-reservations", response_model=ReleaseReservationsResponse)
async def release_expired_reservations(
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Release bedroom reservations whose window has passed."""
    released = await release_reservations_job(db, int(current_user["agency_id"]), utcnow())
    await db.commit()
    return ReleaseReservationsResponse(released=released)


@router.post("/mark-overdue", response_model=MarkOverdueResponse)
async def mark_overdue(
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    marked = await mark_overdue_job(db, int(current_user["agency_id"]), utcnow())
    await db.commit()
    return MarkOverdueResponse(marked_overdue=marked)


@router.post("/rolling-payments", response_model=RollingPaymentsResponse)
async def generate_rolling_payments(
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Create next month's rent lines for rolling tenancies. Safe to repeat."""
    outcome = await rolling_payments_job(db, int(current_user["agency_id"]), utcnow())
    await db.commit()
    return RollingPaymentsResponse(
        target_month=outcome.target_month,
        tenancies_processed=outcome.tenancies_processed,
        payments_created=outcome.payments_created,
        payments_skipped=outcome.payments_skipped,
    )
