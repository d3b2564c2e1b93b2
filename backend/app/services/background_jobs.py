"""
Background maintenance jobs.

- release expired bedroom reservations
- flip past-due schedule lines to overdue
- create next month's rent for rolling tenancies

Each job is idempotent and runs per agency in its own transaction, so one
agency's failure does not stop the others. The same functions back the
admin ops endpoints.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import select, union
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.core.clock import utcnow
from backend.app.domain.deposits.reservation_guard import release_expired_reservations
from backend.app.domain.ledger.payment_ledger import mark_overdue_schedules
from backend.app.domain.rent.rolling_payments import RollingRunResult, generate_rolling_monthly_payments
from backend.app.models.holding_deposit import HoldingDeposit
from backend.app.models.payment_schedule import PaymentSchedule
from backend.app.models.tenancy import Tenancy
from backend.app.services.audit import log_event, AuditAction

logger = logging.getLogger(__name__)


async def release_reservations_job(db: AsyncSession, agency_id: int, now: datetime) -> int:
    released = await release_expired_reservations(db, agency_id, now)
    if released:
        await log_event(
            db, agency_id, AuditAction.RESERVATIONS_RELEASED,
            entity_type="holding_deposit", metadata={"released": released},
        )
    return released


async def mark_overdue_job(db: AsyncSession, agency_id: int, now: datetime) -> int:
    marked = await mark_overdue_schedules(db, agency_id, now.date())
    if marked:
        await log_event(
            db, agency_id, AuditAction.SCHEDULES_MARKED_OVERDUE,
            entity_type="payment_schedule", metadata={"marked_overdue": marked},
        )
    return marked


async def rolling_payments_job(db: AsyncSession, agency_id: int, now: datetime) -> RollingRunResult:
    outcome = await generate_rolling_monthly_payments(db, agency_id, now.date())
    if outcome.payments_created:
        await log_event(
            db, agency_id, AuditAction.ROLLING_PAYMENTS_GENERATED,
            entity_type="tenancy",
            metadata={
                "target_month": outcome.target_month.isoformat(),
                "created": outcome.payments_created,
                "skipped": outcome.payments_skipped,
            },
        )
    return outcome


JOBS = (
    ("release_reservations", release_reservations_job),
    ("mark_overdue", mark_overdue_job),
    ("rolling_payments", rolling_payments_job),
)


@dataclass
class JobRunReport:
    agencies: List[int] = field(default_factory=list)
    failures: Dict[str, List[int]] = field(default_factory=dict)


async def known_agencies(db: AsyncSession) -> List[int]:
    """Agencies with any tenancy, deposit or schedule line."""
    stmt = union(
        select(Tenancy.agency_id),
        select(HoldingDeposit.agency_id),
        select(PaymentSchedule.agency_id),
    )
    result = await db.execute(stmt)
    return sorted(row[0] for row in result.all())


async def run_all_jobs(session_factory: async_sessionmaker, now: Optional[datetime] = None) -> JobRunReport:
    now = now or utcnow()
    report = JobRunReport()

    async with session_factory() as session:
        report.agencies = await known_agencies(session)

    for agency_id in report.agencies:
        for name, job in JOBS:
            async with session_factory() as session:
                try:
                    await job(session, agency_id, now)
                    await session.commit()
                except Exception:
                    await session.rollback()
                    logger.exception("Background job %s failed for agency %s", name, agency_id)
                    report.failures.setdefault(name, []).append(agency_id)
    return report


async def run_periodically(session_factory: async_sessionmaker, interval_seconds: int) -> None:
    """Run every job, then sleep; stops when the task is cancelled."""
    logger.info("Background jobs started (every %ss)", interval_seconds)
    try:
        while True:
            try:
                report = await run_all_jobs(session_factory)
            except Exception:
                logger.exception("Background job run failed")
            else:
                logger.info(
                    "Background jobs ran for %d agencies, %d failure(s)",
                    len(report.agencies), sum(len(a) for a in report.failures.values()),
                )
            await asyncio.sleep(interval_seconds)
    except asyncio.CancelledError:
        logger.info("Background jobs stopped")
        raise
