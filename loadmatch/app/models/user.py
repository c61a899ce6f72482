"""
User database model.

Only the fields the matching service reads: identity, active flag and
the company the user works for.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey
from sqlalchemy.sql import func
from loadmatch.app.db.session import Base


class User(Base):
    """Platform user (owner/dispatcher) as seen by the matching service."""
    __tablename__ = "users"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    username = Column(String(100), unique=True, index=True, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    
    # Workspace company (null for independent owner-operators)
    company_id = Column(Integer, ForeignKey('companies.id'), nullable=True, index=True)
    
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    
    def __repr__(self):
        return f"<User(id={self.id}, username='{self.username}', company_id={self.company_id})>"
