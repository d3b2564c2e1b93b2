"""
Application database model.

Minimal view of a tenancy application; the application workflow itself
lives outside the financial engine.
"""

from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.enums import value_enum
from backend.app.models.tenancy_enums import ApplicationStatus


class Application(Base):
    """Application submitted by a prospective tenant."""
    __tablename__ = "applications"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    agency_id = Column(Integer, nullable=False, index=True)
    
    # Applicant (user account owning the application)
    user_id = Column(Integer, nullable=False, index=True)
    first_name = Column(String(100), nullable=False)
    surname = Column(String(100), nullable=False)
    email = Column(String(255), nullable=True)
    
    status = Column(value_enum(ApplicationStatus), default=ApplicationStatus.SUBMITTED, nullable=False, index=True)
    
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    
    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.surname}"
    
    def __repr__(self):
        return f"<Application(id={self.id}, applicant='{self.full_name}', status='{self.status.value}')>"
