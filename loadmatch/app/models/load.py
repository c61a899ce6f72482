"""
Load database model.

Loads are both the cargo already on a trip and the marketplace
postings the matching engine searches.
"""

from sqlalchemy import Column, Integer, String, Float, Boolean, Date, DateTime, ForeignKey, Enum
from sqlalchemy.sql import func
from loadmatch.app.db.session import Base
from loadmatch.app.models.matching_enums import PostingStatus


class Load(Base):
    """Load model."""
    __tablename__ = "loads"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    load_number = Column(String(50), nullable=True)
    
    # Ownership
    owner_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    company_id = Column(Integer, ForeignKey('companies.id'), nullable=True, index=True)
    posted_by_company_id = Column(Integer, ForeignKey('companies.id'), nullable=True)
    
    # Pickup
    pickup_city = Column(String(100), nullable=True)
    pickup_state = Column(String(2), nullable=True)
    pickup_zip = Column(String(10), nullable=True)
    pickup_date = Column(Date, nullable=True, index=True)
    
    # Delivery
    delivery_city = Column(String(100), nullable=True)
    delivery_state = Column(String(2), nullable=True)
    delivery_zip = Column(String(10), nullable=True)
    delivery_date = Column(Date, nullable=True)
    
    # Size
    cubic_feet = Column(Float, nullable=True)
    actual_cuft_loaded = Column(Float, nullable=True)
    
    # Revenue
    total_rate = Column(Float, nullable=True)
    rate_per_cuft = Column(Float, nullable=True)
    balance_due = Column(Float, nullable=True)
    
    # Marketplace posting
    posting_type = Column(String(20), nullable=True)  # "pickup" or "load"
    posting_status = Column(Enum(PostingStatus), default=PostingStatus.DRAFT, nullable=False, index=True)
    is_marketplace_visible = Column(Boolean, default=False, nullable=False)
    assigned_carrier_id = Column(Integer, ForeignKey('companies.id'), nullable=True, index=True)
    
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    
    def __repr__(self):
        return f"<Load(id={self.id}, number='{self.load_number}', status='{self.posting_status.value}')>"
