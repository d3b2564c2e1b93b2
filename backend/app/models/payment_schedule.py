"""
Payment schedule and payment database models.

A schedule line is an amount due on a date. Payments are immutable records
of money received against exactly one line.
"""

from sqlalchemy import Column, Integer, String, Date, DateTime, Numeric, ForeignKey, Index
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.enums import value_enum
from backend.app.models.payment_enums import ScheduleStatus, PaymentType, ScheduleType
from backend.app.domain.rent.proration import is_rolling_first_with_partial


class PaymentSchedule(Base):
    """
    Payment schedule line.
    
    Created by the schedule generator (or manually by staff); its status is
    only ever changed by the payment ledger.
    Negative amounts represent money owed to the tenant (deposit returns).
    """
    __tablename__ = "payment_schedules"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    agency_id = Column(Integer, nullable=False, index=True)
    tenancy_id = Column(Integer, ForeignKey('tenancies.id'), nullable=False, index=True)
    # Null for tenancy-level lines (combined security deposit)
    tenancy_member_id = Column(Integer, ForeignKey('tenancy_members.id'), nullable=True, index=True)
    
    payment_type = Column(value_enum(PaymentType), nullable=False)
    schedule_type = Column(value_enum(ScheduleType), default=ScheduleType.AUTOMATED, nullable=False)
    description = Column(String(255), nullable=True)
    
    due_date = Column(Date, nullable=False, index=True)
    amount_due = Column(Numeric(10, 2), nullable=False)
    
    # Rent period represented by this line (null for deposits)
    covers_from = Column(Date, nullable=True)
    covers_to = Column(Date, nullable=True)
    
    status = Column(value_enum(ScheduleStatus), default=ScheduleStatus.PENDING, nullable=False, index=True)
    
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    
    __table_args__ = (
        Index('ix_payment_schedules_tenancy_due', 'tenancy_id', 'due_date'),
    )
    
    @property
    def is_rolling_first_payment_with_partial(self) -> bool:
        return is_rolling_first_with_partial(self.description)
    
    def __repr__(self):
        return f"<PaymentSchedule(id={self.id}, due={self.due_date}, amount={self.amount_due}, status='{self.status.value}')>"


class Payment(Base):
    """
    Payment record.
    
    Immutable record of money received. Deleted only by explicit revert.
    """
    __tablename__ = "payments"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    agency_id = Column(Integer, nullable=False, index=True)
    payment_schedule_id = Column(
        Integer, ForeignKey('payment_schedules.id', ondelete='CASCADE'), nullable=False, index=True
    )
    
    amount = Column(Numeric(10, 2), nullable=False)
    paid_date = Column(Date, nullable=False)
    reference = Column(String(100), nullable=True)
    
    # Timestamps (Immutable - no updated_at)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    
    def __repr__(self):
        return f"<Payment(id={self.id}, schedule_id={self.payment_schedule_id}, amount={self.amount})>"
