"""
Payment Schedule and Payment Schemas.
"""

from pydantic import BaseModel, Field
from datetime import date
from decimal import Decimal
from typing import Optional, List, Dict
from backend.app.models.payment_enums import PaymentType, ScheduleStatus, ScheduleType


class PaymentRecordCreate(BaseModel):
    """Money received against a schedule line (negative for refunds)."""
    amount: Decimal = Field(..., max_digits=10, decimal_places=2)
    paid_date: date
    reference: Optional[str] = Field(None, max_length=100)


class PaymentResponse(BaseModel):
    id: int
    payment_schedule_id: int
    amount: Decimal
    paid_date: date
    reference: Optional[str]

    class Config:
        from_attributes = True


class PaymentScheduleResponse(BaseModel):
    id: int
    tenancy_id: int
    tenancy_member_id: Optional[int]
    payment_type: PaymentType
    schedule_type: ScheduleType
    description: Optional[str]
    due_date: date
    amount_due: Decimal
    covers_from: Optional[date]
    covers_to: Optional[date]
    status: ScheduleStatus
    amount_paid: Optional[Decimal] = None

    class Config:
        from_attributes = True


class PaymentRecordResult(BaseModel):
    schedule: PaymentScheduleResponse
    payment: PaymentResponse


class PaymentRevertResult(BaseModel):
    schedule: PaymentScheduleResponse
    payments_deleted: int


class ManualScheduleCreate(BaseModel):
    tenancy_id: int
    member_id: int
    due_date: date
    amount_due: Decimal = Field(..., max_digits=10, decimal_places=2)
    payment_type: PaymentType
    description: Optional[str] = Field(None, max_length=255)


class ScheduleUpdate(BaseModel):
    amount_due: Decimal = Field(..., max_digits=10, decimal_places=2)
    due_date: date
    payment_type: PaymentType
    description: str = Field(..., min_length=1, max_length=255)


class PaymentSummaryResponse(BaseModel):
    tenancy_id: int
    total_due: Decimal
    total_paid: Decimal
    total_outstanding: Decimal
    status_counts: Dict[str, int]


class MonthPortionResponse(BaseModel):
    month: str
    period_start: date
    period_end: date
    days: int
    full_month_days: int
    is_full_month: bool
    amount: Decimal

    class Config:
        from_attributes = True


class PaymentBreakdownResponse(BaseModel):
    """How a rent line maps onto calendar months."""
    schedule_id: int
    pppw: Decimal
    monthly_rate: Decimal
    daily_rate: Decimal
    rent_per_day: Decimal
    days: int
    days_in_month: Optional[int]
    is_full_month: bool
    is_multi_month: bool
    period_start: date
    period_end: date
    calculated_amount: Decimal
    calculation_method: str
    monthly_breakdown: Optional[List[MonthPortionResponse]] = None
