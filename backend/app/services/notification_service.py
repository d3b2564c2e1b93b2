"""
Notification Service.

In-app notifications sent after a financial change has been committed.
Delivery is best effort: it runs in its own session, behind a circuit
breaker, and a failure is logged but never reaches the caller.
"""

import logging
from typing import Optional, Dict, Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.core.reliability import CircuitOpenError, notification_circuit_breaker
from backend.app.models.notification import Notification, NotificationType

logger = logging.getLogger(__name__)


class NotificationService:

    @staticmethod
    async def create_notification(
        db: AsyncSession,
        agency_id: int,
        user_id: int,
        title: str,
        message: str,
        type: NotificationType = NotificationType.INFO,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Notification:
        """Create a single notification."""
        notif = Notification(
            agency_id=agency_id,
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            metadata_payload=metadata
        )
        db.add(notif)
        await db.flush()  # Caller commits
        return notif


async def _deliver(session_factory: async_sessionmaker, **notification) -> None:
    async with session_factory() as session:
        await NotificationService.create_notification(session, **notification)
        await session.commit()


async def send_best_effort(session_factory: async_sessionmaker, **notification) -> bool:
    """
    Deliver a notification without letting a failure escape.

    Returns True when the notification was stored.
    """
    try:
        await notification_circuit_breaker.call(_deliver, session_factory, **notification)
    except CircuitOpenError:
        logger.warning("Notification skipped, delivery circuit open: %s", notification.get("title"))
        return False
    except Exception:
        logger.exception(
            "Failed to send notification '%s' to user %s",
            notification.get("title"), notification.get("user_id"),
        )
        return False
    return True


async def notify_application_approved(
    session_factory: async_sessionmaker,
    agency_id: int,
    user_id: int,
    application_id: int,
    deposit_id: int,
) -> bool:
    return await send_best_effort(
        session_factory,
        agency_id=agency_id,
        user_id=user_id,
        title="Application Approved",
        message="Great news! Your application has been approved. We will be in touch with next steps.",
        type=NotificationType.APPLICATION_APPROVED,
        metadata={"application_id": application_id, "holding_deposit_id": deposit_id},
    )
