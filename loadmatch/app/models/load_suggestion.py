"""
Load suggestion database model.

One row per (trip, load) pair; each matching run upserts over it.
"""

from sqlalchemy import Column, Integer, Float, DateTime, ForeignKey, Enum, JSON, UniqueConstraint
from sqlalchemy.sql import func
from loadmatch.app.db.session import Base
from loadmatch.app.models.matching_enums import SuggestionType, SuggestionStatus


class LoadSuggestion(Base):
    """
    Ranked load suggestion produced by the matching engine.
    
    Metrics are a snapshot taken at scoring time. expires_at is advisory:
    readers hide expired rows, nothing sweeps them.
    """
    __tablename__ = "load_suggestions"
    __table_args__ = (UniqueConstraint("trip_id", "load_id", name="uq_load_suggestion_trip_load"),)
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    # Who this suggestion is for
    owner_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    company_id = Column(Integer, ForeignKey('companies.id'), nullable=True, index=True)
    trip_id = Column(Integer, ForeignKey('trips.id', ondelete="CASCADE"), nullable=False, index=True)
    driver_id = Column(Integer, ForeignKey('drivers.id'), nullable=True, index=True)
    load_id = Column(Integer, ForeignKey('loads.id', ondelete="CASCADE"), nullable=False, index=True)
    
    suggestion_type = Column(Enum(SuggestionType), nullable=False)
    
    # Distance metrics (miles)
    distance_to_pickup_miles = Column(Float, nullable=True)
    load_miles = Column(Float, nullable=True)
    total_miles = Column(Float, nullable=True)
    
    # Financial metrics
    revenue_estimate = Column(Float, nullable=True)
    driver_cost_estimate = Column(Float, nullable=True)
    fuel_cost_estimate = Column(Float, nullable=True)
    profit_estimate = Column(Float, nullable=True)
    profit_per_mile = Column(Float, nullable=True)
    
    capacity_fit_percent = Column(Float, nullable=True)
    
    # Scoring (5-100)
    match_score = Column(Float, nullable=False, index=True)
    score_breakdown = Column(JSON, nullable=True)
    
    status = Column(Enum(SuggestionStatus), default=SuggestionStatus.PENDING, nullable=False, index=True)
    
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    viewed_at = Column(DateTime(timezone=True), nullable=True)
    actioned_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True, index=True)
    
    def __repr__(self):
        return f"<LoadSuggestion(trip_id={self.trip_id}, load_id={self.load_id}, score={self.match_score})>"
