"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from backend.app.api.v1.endpoints import (
    holding_deposits,
    tenancies,
    payments,
    admin_ops,
)

router = APIRouter()

# Holding deposits and bedroom reservations
router.include_router(holding_deposits.router)
router.include_router(holding_deposits.bedroom_router)

# Payment schedules and payments
router.include_router(tenancies.router)
router.include_router(payments.router)

# Maintenance jobs
router.include_router(admin_ops.router)
