"""
Audit logging service for financial state changes.

Events are written in the caller's transaction, so an audit row exists
exactly when the change it describes was committed.
"""

from typing import Optional, Dict, Any, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from backend.app.models.audit_log import AuditLog


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    # Holding deposits
    HOLDING_DEPOSIT_CREATED = "HOLDING_DEPOSIT_CREATED"
    HOLDING_DEPOSIT_PAYMENT_RECORDED = "HOLDING_DEPOSIT_PAYMENT_RECORDED"
    HOLDING_DEPOSIT_PAYMENT_UNDONE = "HOLDING_DEPOSIT_PAYMENT_UNDONE"
    HOLDING_DEPOSIT_STATUS_CHANGED = "HOLDING_DEPOSIT_STATUS_CHANGED"
    HOLDING_DEPOSIT_APPLIED = "HOLDING_DEPOSIT_APPLIED"
    APPLICATION_APPROVED = "APPLICATION_APPROVED"

    # Payment schedules
    PAYMENT_SCHEDULE_GENERATED = "PAYMENT_SCHEDULE_GENERATED"
    PAYMENT_SCHEDULE_CREATED = "PAYMENT_SCHEDULE_CREATED"
    PAYMENT_SCHEDULE_UPDATED = "PAYMENT_SCHEDULE_UPDATED"
    PAYMENT_SCHEDULE_DELETED = "PAYMENT_SCHEDULE_DELETED"
    DEPOSIT_RETURN_CREATED = "DEPOSIT_RETURN_CREATED"

    # Payments
    PAYMENT_RECORDED = "PAYMENT_RECORDED"
    PAYMENT_REVERTED = "PAYMENT_REVERTED"
    PAYMENT_DELETED = "PAYMENT_DELETED"

    # Maintenance jobs
    RESERVATIONS_RELEASED = "RESERVATIONS_RELEASED"
    SCHEDULES_MARKED_OVERDUE = "SCHEDULES_MARKED_OVERDUE"
    ROLLING_PAYMENTS_GENERATED = "ROLLING_PAYMENTS_GENERATED"


async def log_event(
    db: AsyncSession,
    agency_id: int,
    action: str,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    actor_id: Optional[int] = None,
    actor_username: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """
    Add an event to the audit log.

    Args:
        db: Database session (the caller commits)
        agency_id: Agency scope of the event
        action: Action being performed (use AuditAction constants)
        entity_type: Kind of record affected, e.g. "holding_deposit"
        entity_id: ID of the record affected
        actor_id: ID of user performing the action, None for system jobs
        actor_username: Username of actor
        metadata: Additional context as JSON

    Returns:
        Created AuditLog instance
    """
    audit_log = AuditLog(
        agency_id=agency_id,
        actor_id=actor_id,
        actor_username=actor_username,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        meta_data=metadata,
    )

    db.add(audit_log)
    await db.flush()

    return audit_log


async def log_user_action(
    db: AsyncSession,
    current_user: Dict[str, Any],
    action: str,
    entity_type: str,
    entity_id: Optional[int],
    metadata: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """Log an action taken by the authenticated caller."""
    return await log_event(
        db=db,
        agency_id=int(current_user["agency_id"]),
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_id=current_user.get("user_id"),
        actor_username=current_user.get("sub"),
        metadata=metadata,
    )


async def get_audit_trail(
    db: AsyncSession,
    agency_id: int,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    action: Optional[str] = None,
    limit: int = 100
) -> List[AuditLog]:
    """
    Retrieve audit trail with optional filtering.

    Returns:
        List of AuditLog instances, most recent first
    """
    query = select(AuditLog).where(AuditLog.agency_id == agency_id).order_by(desc(AuditLog.timestamp), desc(AuditLog.id))

    if entity_type:
        query = query.where(AuditLog.entity_type == entity_type)

    if entity_id is not None:
        query = query.where(AuditLog.entity_id == entity_id)

    if action:
        query = query.where(AuditLog.action == action)

    query = query.limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())
