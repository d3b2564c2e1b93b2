"""
Tenancy Payment Schemas.
"""

from pydantic import BaseModel
from datetime import date
from typing import List
from backend.app.schemas.payment import PaymentScheduleResponse


class ScheduleGenerationResponse(BaseModel):
    tenancy_id: int
    lines_created: int
    rent_credits_applied: int
    schedules: List[PaymentScheduleResponse]


class DepositReturnCreate(BaseModel):
    key_return_date: date


class DepositReturnResponse(BaseModel):
    tenancy_id: int
    deposit_return_date: date
    schedules: List[PaymentScheduleResponse]
