"""
Holding Deposit Schemas.
"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from backend.app.models.deposit_enums import DepositStatus


class HoldingDepositCreate(BaseModel):
    """Deposit received at approval time; approves the application."""
    application_id: int
    amount: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    date_received: date
    payment_reference: Optional[str] = Field(None, max_length=100)
    bedroom_id: Optional[int] = None
    property_id: Optional[int] = None
    reservation_days: Optional[int] = Field(None, ge=1, le=365)


class HoldingDepositAwaitingCreate(BaseModel):
    """Deposit requested when the application is made; no money yet."""
    application_id: int
    amount: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    bedroom_id: Optional[int] = None
    property_id: Optional[int] = None
    reservation_days: Optional[int] = Field(None, ge=1, le=365)


class DepositPaymentRecord(BaseModel):
    date_received: date
    payment_reference: Optional[str] = Field(None, max_length=100)


class DepositStatusUpdate(BaseModel):
    """Refund or forfeit a deposit."""
    status: DepositStatus
    notes: Optional[str] = None


class DepositApply(BaseModel):
    tenancy_id: int
    status: DepositStatus = Field(..., description="applied_to_rent or applied_to_deposit")


class HoldingDepositResponse(BaseModel):
    id: int
    application_id: int
    amount: Decimal
    payment_reference: Optional[str]
    date_received: Optional[date]
    status: DepositStatus
    bedroom_id: Optional[int]
    property_id: Optional[int]
    reservation_days: Optional[int]
    reservation_expires_at: Optional[datetime]
    reservation_released: bool
    applied_to_tenancy_id: Optional[int]
    status_changed_at: Optional[datetime]
    status_changed_by: Optional[int]
    notes: Optional[str]

    class Config:
        from_attributes = True


class ActiveReservationResponse(BaseModel):
    deposit_id: int
    application_id: int
    applicant_name: str
    reservation_expires_at: datetime

    class Config:
        from_attributes = True


class BedroomReservationResponse(BaseModel):
    """Whether a bedroom is reserved right now, and by whom."""
    bedroom_id: int
    reserved: bool
    reservation: Optional[ActiveReservationResponse] = None
