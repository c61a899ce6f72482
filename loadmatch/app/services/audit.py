"""
Audit logging service.

Records matching runs and user changes to suggestions and settings.
"""

from typing import Optional, Dict, Any, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from loadmatch.app.models.audit_log import AuditLog


class AuditAction:
    """Standardized audit action constants."""
    LOAD_MATCHES_GENERATED = "LOAD_MATCHES_GENERATED"
    LOAD_SUGGESTION_STATUS_CHANGED = "LOAD_SUGGESTION_STATUS_CHANGED"
    MATCHING_SETTINGS_UPDATED = "MATCHING_SETTINGS_UPDATED"


async def log_event(
    db: AsyncSession,
    action: str,
    actor_id: Optional[int] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """
    Write one audit entry and commit it.
    
    Args:
        db: Database session
        action: Action performed (use AuditAction constants)
        actor_id: ID of the user performing the action
        entity_type: Kind of record acted upon ("trip", "load_suggestion", ...)
        entity_id: ID of that record
        metadata: Additional context as JSON
        
    Returns:
        Created AuditLog instance
    """
    audit_log = AuditLog(
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        meta_data=metadata,
    )
    
    db.add(audit_log)
    await db.commit()
    await db.refresh(audit_log)
    
    return audit_log


async def get_audit_trail(
    db: AsyncSession,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    action: Optional[str] = None,
    limit: int = 100,
) -> List[AuditLog]:
    """Most recent audit entries, optionally filtered."""
    query = select(AuditLog)
    
    if entity_type:
        query = query.where(AuditLog.entity_type == entity_type)
    if entity_id is not None:
        query = query.where(AuditLog.entity_id == entity_id)
    if action:
        query = query.where(AuditLog.action == action)
    
    query = query.order_by(desc(AuditLog.timestamp), desc(AuditLog.id)).limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())
