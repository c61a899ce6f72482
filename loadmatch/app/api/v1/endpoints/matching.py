"""
Load Matching API Endpoints.

Run matching for a trip, read and act on stored suggestions, search
loads along a trip's route, and inspect trip visibility/capacity.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Path, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from loadmatch.app.core.config import settings
from loadmatch.app.core.dependencies import get_current_user, get_geo_resolver
from loadmatch.app.core.exceptions import (
    InsufficientPermissionsError,
    ResourceNotFoundError,
    SuggestionPersistenceError,
)
from loadmatch.app.db.session import get_db
from loadmatch.app.domain.matching import queries
from loadmatch.app.domain.matching.engine import build_matching_context, run_matching
from loadmatch.app.domain.matching.route_loads import find_loads_along_route
from loadmatch.app.domain.matching.types import RouteLoadsResult
from loadmatch.app.domain.matching.visibility_resolver import VisibilityResolver
from loadmatch.app.models.load_suggestion import LoadSuggestion
from loadmatch.app.models.matching_enums import SuggestionStatus
from loadmatch.app.models.user import User
from loadmatch.app.schemas.matching import (
    LoadMatchResponse,
    LoadSuggestionListResponse,
    LoadSuggestionResponse,
    LoadSuggestionStatusUpdate,
    MatchingOverrides,
    TripCapacityResponse,
    TripVisibilityResponse,
)
from loadmatch.app.services.audit import log_event, AuditAction
from loadmatch.app.services.geocoding import GeoResolver

router = APIRouter(tags=["Load Matching"])

ACTIONED_STATUSES = {
    SuggestionStatus.INTERESTED,
    SuggestionStatus.CLAIMED,
    SuggestionStatus.DISMISSED,
}


@router.post("/trips/{trip_id}/load-matches", response_model=LoadMatchResponse)
async def generate_load_matches(
    trip_id: int = Path(..., description="Trip ID"),
    overrides: Optional[MatchingOverrides] = Body(None),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    geo: GeoResolver = Depends(get_geo_resolver),
):
    """
    Run load matching for one of the caller's trips.
    
    Suggestions are ranked by match score and saved (replacing earlier
    suggestions for the same loads).
    """
    run = await run_matching(
        db,
        geo,
        trip_id,
        current_user.id,
        overrides.model_dump(exclude_none=True) if overrides else None,
    )
    if run is None:
        raise ResourceNotFoundError("Trip", trip_id)
    
    if not run.save_result.success:
        raise SuggestionPersistenceError(trip_id, run.save_result.error or "unknown error")
    
    await log_event(
        db=db,
        action=AuditAction.LOAD_MATCHES_GENERATED,
        actor_id=current_user.id,
        entity_type="trip",
        entity_id=trip_id,
        metadata={
            "suggestions": len(run.suggestions),
            "saved": run.save_result.count,
            "top_score": run.suggestions[0].match_score if run.suggestions else None,
        },
    )
    
    return LoadMatchResponse(
        trip_id=trip_id,
        suggestions=run.suggestions,
        saved_count=run.save_result.count,
    )


@router.get("/trips/{trip_id}/load-suggestions", response_model=LoadSuggestionListResponse)
async def list_load_suggestions(
    trip_id: int = Path(..., description="Trip ID"),
    include_expired: bool = Query(False, description="Include suggestions past their expiry"),
    suggestion_status: Optional[SuggestionStatus] = Query(None, alias="status"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Stored suggestions for one of the caller's trips, best first."""
    trip = await queries.get_owned_trip(db, trip_id, current_user.id)
    if not trip:
        raise ResourceNotFoundError("Trip", trip_id)
    
    query = select(LoadSuggestion).where(LoadSuggestion.trip_id == trip_id)
    if not include_expired:
        query = query.where(LoadSuggestion.expires_at > datetime.utcnow())
    if suggestion_status:
        query = query.where(LoadSuggestion.status == suggestion_status)
    query = query.order_by(LoadSuggestion.match_score.desc(), LoadSuggestion.id)
    
    result = await db.execute(query)
    suggestions = result.scalars().all()
    
    return LoadSuggestionListResponse(
        suggestions=[LoadSuggestionResponse.model_validate(s) for s in suggestions],
        total=len(suggestions),
    )


@router.patch("/load-suggestions/{suggestion_id}", response_model=LoadSuggestionResponse)
async def update_load_suggestion_status(
    update: LoadSuggestionStatusUpdate,
    suggestion_id: int = Path(..., description="Suggestion ID"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Record what the user did with a suggestion.
    
    viewed stamps viewed_at; interested, claimed and dismissed stamp
    actioned_at.
    """
    result = await db.execute(
        select(LoadSuggestion).where(
            LoadSuggestion.id == suggestion_id,
            LoadSuggestion.owner_id == current_user.id,
        )
    )
    suggestion = result.scalar_one_or_none()
    if not suggestion:
        raise ResourceNotFoundError("Load suggestion", suggestion_id)
    
    previous_status = suggestion.status
    now = datetime.utcnow()
    suggestion.status = update.status
    if update.status == SuggestionStatus.VIEWED and suggestion.viewed_at is None:
        suggestion.viewed_at = now
    if update.status in ACTIONED_STATUSES:
        suggestion.actioned_at = now
    
    await db.commit()
    await db.refresh(suggestion)
    
    await log_event(
        db=db,
        action=AuditAction.LOAD_SUGGESTION_STATUS_CHANGED,
        actor_id=current_user.id,
        entity_type="load_suggestion",
        entity_id=suggestion.id,
        metadata={
            "trip_id": suggestion.trip_id,
            "load_id": suggestion.load_id,
            "from": previous_status.value,
            "to": update.status.value,
        },
    )
    
    return LoadSuggestionResponse.model_validate(suggestion)


@router.get("/trips/{trip_id}/route-loads", response_model=RouteLoadsResult)
async def list_route_loads(
    trip_id: int = Path(..., description="Trip ID"),
    max_detour: str = Query(
        str(settings.default_max_detour_miles),
        description="Maximum added miles, or 'all' for no limit",
    ),
    max_cuft: Optional[float] = Query(None, gt=0, description="Largest load to consider (cu ft)"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    geo: GeoResolver = Depends(get_geo_resolver),
):
    """Marketplace loads along the trip's route, least detour first."""
    if max_detour.strip().lower() == "all":
        detour_limit = None
    else:
        try:
            detour_limit = int(max_detour)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="max_detour must be a whole number of miles or 'all'",
            )
    
    result = await find_loads_along_route(db, geo, trip_id, current_user.id, detour_limit, max_cuft)
    if result is None:
        raise ResourceNotFoundError("Trip", trip_id)
    return result


@router.get("/trips/{trip_id}/visibility", response_model=TripVisibilityResponse)
async def get_trip_visibility(
    trip_id: int = Path(..., description="Trip ID"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Effective location/capacity sharing for one of the caller's trips."""
    trip = await queries.get_owned_trip(db, trip_id, current_user.id)
    if not trip:
        raise ResourceNotFoundError("Trip", trip_id)
    
    driver = await queries.get_driver(db, trip.driver_id)
    company_settings = await queries.get_company_settings(db, current_user.company_id)
    
    return TripVisibilityResponse(
        trip_id=trip.id,
        visibility=VisibilityResolver.get_effective_visibility(trip, driver, company_settings),
    )


@router.get("/trips/{trip_id}/capacity", response_model=TripCapacityResponse)
async def get_trip_capacity(
    trip_id: int = Path(..., description="Trip ID"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Remaining capacity of a trip, as visible to the caller's company.
    
    The trip must share capacity and its visibility level must grant the
    caller's company (owner, active partner, or anyone when public).
    """
    trip = await queries.get_trip(db, trip_id)
    if not trip:
        raise ResourceNotFoundError("Trip", trip_id)
    
    owner_company_id = await queries.get_user_company_id(db, trip.owner_id)
    driver = await queries.get_driver(db, trip.driver_id)
    company_settings = await queries.get_company_settings(db, owner_company_id)
    visibility = VisibilityResolver.get_effective_visibility(trip, driver, company_settings)
    
    is_trip_owner = trip.owner_id == current_user.id
    if not is_trip_owner:
        if not visibility.share_capacity:
            raise InsufficientPermissionsError("Trip capacity is not shared")
        partner_ids = await queries.get_partner_company_ids(db, owner_company_id)
        if not VisibilityResolver.is_capacity_visible_to(
            visibility.capacity_visibility,
            current_user.company_id,
            owner_company_id,
            partner_ids,
        ):
            raise InsufficientPermissionsError("Trip capacity is not visible to your company")
    
    context = await build_matching_context(db, trip.id, trip.owner_id)
    if context is None:
        raise ResourceNotFoundError("Trip", trip_id)
    
    return TripCapacityResponse(
        trip_id=trip.id,
        capacity_visibility=visibility.capacity_visibility,
        trailer_capacity_cuft=context.trailer_capacity_cuft,
        remaining_capacity_cuft=context.remaining_capacity_cuft,
        current_city=trip.current_location_city if visibility.share_location else None,
        current_state=trip.current_location_state if visibility.share_location else None,
    )
