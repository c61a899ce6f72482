"""
Company, partnership and matching-settings models.
"""

from sqlalchemy import (
    Column, Integer, String, Float, Boolean, DateTime, ForeignKey, Enum, JSON, UniqueConstraint
)
from sqlalchemy.sql import func
from loadmatch.app.db.session import Base
from loadmatch.app.models.matching_enums import (
    PartnershipStatus, CapacityVisibility, NotificationPreference
)


class Company(Base):
    """Broker, carrier or owner-operator business."""
    __tablename__ = "companies"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    
    def __repr__(self):
        return f"<Company(id={self.id}, name='{self.name}')>"


class CompanyPartnership(Base):
    """
    Partnership between two companies.
    
    Direction does not matter: a company may appear as either side.
    """
    __tablename__ = "company_partnerships"
    __table_args__ = (UniqueConstraint("company_a_id", "company_b_id", name="uq_partnership_pair"),)
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    company_a_id = Column(Integer, ForeignKey('companies.id'), nullable=False, index=True)
    company_b_id = Column(Integer, ForeignKey('companies.id'), nullable=False, index=True)
    status = Column(Enum(PartnershipStatus), default=PartnershipStatus.PENDING, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    
    def __repr__(self):
        return f"<CompanyPartnership({self.company_a_id}<->{self.company_b_id}, status='{self.status.value}')>"


class CompanyMatchingSettings(Base):
    """
    Company-level preferences for load matching.
    
    Also holds the company defaults used at the bottom of the
    trip > driver > company visibility chain.
    """
    __tablename__ = "company_matching_settings"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    company_id = Column(Integer, ForeignKey('companies.id'), unique=True, nullable=False)
    
    # Matching criteria
    min_profit_per_mile = Column(Float, default=1.0, nullable=False)
    max_deadhead_miles = Column(Float, default=150, nullable=False)
    min_match_score = Column(Float, default=50, nullable=False)
    
    # Regional preferences (lists of state codes)
    preferred_return_states = Column(JSON, default=list, nullable=False)
    excluded_states = Column(JSON, default=list, nullable=False)
    
    # Capacity preferences (percent)
    min_capacity_utilization_percent = Column(Float, default=30, nullable=False)
    max_capacity_utilization_percent = Column(Float, default=100, nullable=False)
    
    notification_preference = Column(
        Enum(NotificationPreference), default=NotificationPreference.PUSH_AND_DASHBOARD, nullable=False
    )
    
    # Auto-capacity posting
    auto_post_capacity_enabled = Column(Boolean, default=False, nullable=False)
    auto_post_min_capacity_cuft = Column(Float, default=500, nullable=False)
    
    # Defaults for new drivers/trips (nullable: unset falls through to the hardcoded default)
    default_location_sharing = Column(Boolean, nullable=True)
    default_capacity_visibility = Column(Enum(CapacityVisibility), nullable=True)
    
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    
    def __repr__(self):
        return f"<CompanyMatchingSettings(company_id={self.company_id})>"
