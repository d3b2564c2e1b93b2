"""
Holding Deposit database model.

Only one live reservation per bedroom is allowed, enforced through a
partial unique index in addition to the conflict check in the service layer.
"""

from sqlalchemy import Column, Integer, String, Text, Boolean, Date, DateTime, Numeric, ForeignKey, Index, text
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.enums import value_enum
from backend.app.models.deposit_enums import DepositStatus

ACTIVE_RESERVATION_PREDICATE = text(
    "status = 'held' AND NOT reservation_released AND reservation_expires_at IS NOT NULL"
)


class HoldingDeposit(Base):
    """
    Holding Deposit model.
    
    Taken from an applicant to hold a bedroom for a bounded window.
    Lifecycle: awaiting_payment -> held -> applied_to_rent / applied_to_deposit,
    or refunded / forfeited from awaiting_payment or held.
    """
    __tablename__ = "holding_deposits"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    agency_id = Column(Integer, nullable=False, index=True)
    application_id = Column(
        Integer, ForeignKey('applications.id', ondelete='CASCADE'), nullable=False, index=True
    )
    
    # Money
    amount = Column(Numeric(10, 2), nullable=False)
    payment_reference = Column(String(100), nullable=True)
    date_received = Column(Date, nullable=True)
    
    # Reservation
    bedroom_id = Column(Integer, ForeignKey('bedrooms.id'), nullable=True, index=True)
    property_id = Column(Integer, ForeignKey('properties.id'), nullable=True)
    reservation_days = Column(Integer, nullable=True)
    reservation_expires_at = Column(DateTime, nullable=True)
    reservation_released = Column(Boolean, default=False, nullable=False)
    
    # Lifecycle
    status = Column(value_enum(DepositStatus), default=DepositStatus.AWAITING_PAYMENT, nullable=False, index=True)
    applied_to_tenancy_id = Column(Integer, ForeignKey('tenancies.id'), nullable=True)
    status_changed_at = Column(DateTime, nullable=True)
    status_changed_by = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)
    
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    
    # Unique constraint: only one live reservation per bedroom
    __table_args__ = (
        Index(
            'ix_holding_deposits_active_reservation', 'bedroom_id', unique=True,
            postgresql_where=ACTIVE_RESERVATION_PREDICATE,
            sqlite_where=ACTIVE_RESERVATION_PREDICATE,
        ),
    )
    
    def __repr__(self):
        return f"<HoldingDeposit(id={self.id}, application_id={self.application_id}, status='{self.status.value}')>"
