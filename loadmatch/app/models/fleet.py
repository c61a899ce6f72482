"""
Driver and trailer models.
"""

from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, ForeignKey, Enum
from sqlalchemy.sql import func
from loadmatch.app.db.session import Base
from loadmatch.app.models.matching_enums import CapacityVisibility


class Driver(Base):
    """
    Driver model.
    
    Carries the pay configuration used for cost estimates and the
    driver-level visibility settings.
    """
    __tablename__ = "drivers"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    owner_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    full_name = Column(String(200), nullable=False)
    
    # Pay configuration. pay_mode is free text on purpose: unknown values
    # are estimated conservatively rather than rejected.
    pay_mode = Column(String(50), nullable=True)
    rate_per_mile = Column(Float, nullable=True)
    rate_per_cuft = Column(Float, nullable=True)
    percent_of_revenue = Column(Float, nullable=True)
    flat_daily_rate = Column(Float, nullable=True)
    
    # Visibility (null = fall through to company default)
    location_sharing_enabled = Column(Boolean, nullable=True)
    auto_post_capacity = Column(Boolean, nullable=True)
    capacity_visibility = Column(Enum(CapacityVisibility), nullable=True)
    
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    
    def __repr__(self):
        return f"<Driver(id={self.id}, pay_mode='{self.pay_mode}')>"


class Trailer(Base):
    """Trailer with a volumetric capacity in cubic feet."""
    __tablename__ = "trailers"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    owner_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    unit_number = Column(String(50), nullable=False)
    cubic_capacity = Column(Float, nullable=True)
    
    def __repr__(self):
        return f"<Trailer(id={self.id}, unit='{self.unit_number}', cuft={self.cubic_capacity})>"
