"""
Property and bedroom database models.
"""

from sqlalchemy import Column, Integer, String, ForeignKey
from backend.app.db.session import Base


class Property(Base):
    """Let property managed by an agency."""
    __tablename__ = "properties"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    agency_id = Column(Integer, nullable=False, index=True)
    address_line1 = Column(String(255), nullable=False)
    
    def __repr__(self):
        return f"<Property(id={self.id}, address='{self.address_line1}')>"


class Bedroom(Base):
    """Bedroom within a property; the unit a holding deposit can reserve."""
    __tablename__ = "bedrooms"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    agency_id = Column(Integer, nullable=False, index=True)
    property_id = Column(Integer, ForeignKey('properties.id'), nullable=False, index=True)
    bedroom_name = Column(String(100), nullable=False)
    
    def __repr__(self):
        return f"<Bedroom(id={self.id}, property_id={self.property_id}, name='{self.bedroom_name}')>"
