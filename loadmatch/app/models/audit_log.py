"""
Audit Log Database Model.

Records matching runs and changes users make to suggestions and settings.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from loadmatch.app.db.session import Base


class AuditLog(Base):
    """
    Audit log entry.
    
    Events logged:
    - LOAD_MATCHES_GENERATED
    - LOAD_SUGGESTION_STATUS_CHANGED
    - MATCHING_SETTINGS_UPDATED
    """
    __tablename__ = "audit_logs"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    # Who performed the action (None for system actions)
    actor_id = Column(Integer, index=True, nullable=True)
    
    action = Column(String(100), nullable=False, index=True)
    
    # What the action was about
    entity_type = Column(String(50), nullable=True)
    entity_id = Column(Integer, nullable=True)
    
    meta_data = Column(JSON, nullable=True)
    
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    
    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', actor={self.actor_id})>"
