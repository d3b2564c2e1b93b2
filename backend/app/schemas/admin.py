"""
Admin API Schema Definitions.

Pydantic schemas for the maintenance (ops) endpoints.
"""

from pydantic import BaseModel
from datetime import date


class ReleaseReservationsResponse(BaseModel):
    released: int


class MarkOverdueResponse(BaseModel):
    marked_overdue: int


class RollingPaymentsResponse(BaseModel):
    target_month: date
    tenancies_processed: int
    payments_created: int
    payments_skipped: int
