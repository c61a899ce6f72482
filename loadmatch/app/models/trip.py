"""
Trip database models.

A trip is one run of a truck/trailer carrying one or more loads. The
matching engine reads it (never writes it) to build its context.
"""

from sqlalchemy import (
    Column, Integer, String, Float, Boolean, DateTime, ForeignKey, Enum, JSON, UniqueConstraint
)
from sqlalchemy.sql import func
from loadmatch.app.db.session import Base
from loadmatch.app.models.matching_enums import CapacityVisibility


class Trip(Base):
    """Trip model."""
    __tablename__ = "trips"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    # Ownership
    owner_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    driver_id = Column(Integer, ForeignKey('drivers.id'), nullable=True, index=True)
    trailer_id = Column(Integer, ForeignKey('trailers.id'), nullable=True)
    
    # Planned route (may be empty; derived from loads when missing)
    origin_city = Column(String(100), nullable=True)
    origin_state = Column(String(2), nullable=True)
    origin_zip = Column(String(10), nullable=True)
    destination_city = Column(String(100), nullable=True)
    destination_state = Column(String(2), nullable=True)
    destination_zip = Column(String(10), nullable=True)
    
    # Trip-level visibility overrides (null = use driver default)
    share_location = Column(Boolean, nullable=True)
    share_capacity = Column(Boolean, nullable=True)
    trip_capacity_visibility = Column(Enum(CapacityVisibility), nullable=True)
    
    # Live location, updated by the mobile app
    current_location_lat = Column(Float, nullable=True)
    current_location_lng = Column(Float, nullable=True)
    current_location_city = Column(String(100), nullable=True)
    current_location_state = Column(String(2), nullable=True)
    current_location_updated_at = Column(DateTime(timezone=True), nullable=True)
    
    # Capacity override and return preferences
    remaining_capacity_cuft = Column(Float, nullable=True)
    return_route_preference = Column(JSON, nullable=True)  # list of state codes
    
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    
    def __repr__(self):
        return f"<Trip(id={self.id}, owner_id={self.owner_id}, driver_id={self.driver_id})>"


class TripLoad(Base):
    """Load attached to a trip, in delivery order."""
    __tablename__ = "trip_loads"
    __table_args__ = (UniqueConstraint("trip_id", "load_id", name="uq_trip_load"),)
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    trip_id = Column(Integer, ForeignKey('trips.id', ondelete="CASCADE"), nullable=False, index=True)
    load_id = Column(Integer, ForeignKey('loads.id', ondelete="CASCADE"), nullable=False, index=True)
    sequence_index = Column(Integer, default=0, nullable=False)
    
    def __repr__(self):
        return f"<TripLoad(trip_id={self.trip_id}, load_id={self.load_id}, seq={self.sequence_index})>"
