"""
Tenancy and tenancy member database models.
"""

from sqlalchemy import Column, Integer, String, Boolean, Date, DateTime, Numeric, ForeignKey
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.enums import value_enum
from backend.app.models.tenancy_enums import TenancyStatus
from backend.app.models.payment_enums import PaymentOption


class Tenancy(Base):
    """
    Tenancy model.
    
    A fixed-term tenancy has an end date. A rolling monthly tenancy has no end
    date until notice is given; its rent lines are generated month by month.
    """
    __tablename__ = "tenancies"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    agency_id = Column(Integer, nullable=False, index=True)
    property_id = Column(Integer, ForeignKey('properties.id'), nullable=False, index=True)
    
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    is_rolling_monthly = Column(Boolean, default=False, nullable=False)
    auto_generate_payments = Column(Boolean, default=True, nullable=False)
    
    # Landlord instructs the agency to collect rent (deposits are always collected)
    manage_rent = Column(Boolean, default=True, nullable=False)
    
    status = Column(value_enum(TenancyStatus), default=TenancyStatus.PENDING, nullable=False, index=True)
    
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    
    def __repr__(self):
        return f"<Tenancy(id={self.id}, start={self.start_date}, end={self.end_date}, status='{self.status.value}')>"


class TenancyMember(Base):
    """Tenant on a tenancy, with their individual rent and deposit terms."""
    __tablename__ = "tenancy_members"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    agency_id = Column(Integer, nullable=False, index=True)
    tenancy_id = Column(Integer, ForeignKey('tenancies.id'), nullable=False, index=True)
    application_id = Column(Integer, ForeignKey('applications.id'), nullable=True, index=True)
    
    first_name = Column(String(100), nullable=False)
    surname = Column(String(100), nullable=False)
    
    # Financial terms
    rent_pppw = Column(Numeric(10, 2), nullable=False)
    deposit_amount = Column(Numeric(10, 2), nullable=False, default=0)
    payment_option = Column(value_enum(PaymentOption), nullable=True)
    
    def __repr__(self):
        return f"<TenancyMember(id={self.id}, tenancy_id={self.tenancy_id}, pppw={self.rent_pppw})>"
