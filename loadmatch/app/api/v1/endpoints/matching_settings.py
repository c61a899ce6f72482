"""
Company Matching Settings API Endpoints.

Read and update the caller company's matching preferences and
visibility defaults. A company without a stored row sees the defaults.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from loadmatch.app.core.dependencies import get_current_user
from loadmatch.app.core.exceptions import ResourceNotFoundError
from loadmatch.app.db.session import get_db
from loadmatch.app.domain.matching import queries
from loadmatch.app.models.company import CompanyMatchingSettings
from loadmatch.app.models.matching_enums import NotificationPreference
from loadmatch.app.models.user import User
from loadmatch.app.schemas.matching import MatchingSettingsResponse, MatchingSettingsUpdate
from loadmatch.app.services.audit import log_event, AuditAction

router = APIRouter(prefix="/matching-settings", tags=["Matching Settings"])

NULLABLE_FIELDS = {"default_location_sharing", "default_capacity_visibility"}


def _default_settings(company_id: int) -> CompanyMatchingSettings:
    """Unsaved settings row carrying the column defaults."""
    return CompanyMatchingSettings(
        company_id=company_id,
        min_profit_per_mile=1.0,
        max_deadhead_miles=150,
        min_match_score=50,
        preferred_return_states=[],
        excluded_states=[],
        min_capacity_utilization_percent=30,
        max_capacity_utilization_percent=100,
        notification_preference=NotificationPreference.PUSH_AND_DASHBOARD,
        auto_post_capacity_enabled=False,
        auto_post_min_capacity_cuft=500,
        default_location_sharing=None,
        default_capacity_visibility=None,
    )


def _require_company(user: User) -> int:
    if user.company_id is None:
        raise ResourceNotFoundError("Company for user", user.id)
    return user.company_id


@router.get("", response_model=MatchingSettingsResponse)
async def get_matching_settings(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Matching settings of the caller's company."""
    company_id = _require_company(current_user)
    company_settings = await queries.get_company_settings(db, company_id)
    if company_settings is None:
        company_settings = _default_settings(company_id)
    return MatchingSettingsResponse.model_validate(company_settings)


@router.put("", response_model=MatchingSettingsResponse)
async def update_matching_settings(
    update: MatchingSettingsUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Update the caller company's matching settings.
    
    Only fields present in the body change. The row is created on first
    update.
    """
    company_id = _require_company(current_user)
    company_settings = await queries.get_company_settings(db, company_id)
    if company_settings is None:
        company_settings = _default_settings(company_id)
        db.add(company_settings)
    
    # Explicit nulls only clear the nullable visibility defaults
    changes = {
        field: value
        for field, value in update.model_dump(exclude_unset=True).items()
        if value is not None or field in NULLABLE_FIELDS
    }
    for field, value in changes.items():
        setattr(company_settings, field, value)
    
    if company_settings.min_capacity_utilization_percent > company_settings.max_capacity_utilization_percent:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="min_capacity_utilization_percent cannot exceed max_capacity_utilization_percent",
        )
    
    await db.commit()
    await db.refresh(company_settings)
    
    await log_event(
        db=db,
        action=AuditAction.MATCHING_SETTINGS_UPDATED,
        actor_id=current_user.id,
        entity_type="company",
        entity_id=company_id,
        metadata={"changed": sorted(changes.keys())},
    )
    
    return MatchingSettingsResponse.model_validate(company_settings)
