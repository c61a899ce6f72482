"""
Smart Load Matching Engine.

Finds marketplace loads a truck could pick up after its final delivery,
scores them and stores the best ones as suggestions.

Flow for one run:
1. build_matching_context - trip, driver, trailer and attached loads
2. find_matching_loads    - geocode the final delivery, fetch candidates
                            and partners, filter + score each candidate
3. save_suggestions       - one batched upsert keyed by (trip_id, load_id)

Geocoding and storage read failures shrink the result (a skipped
candidate, or no suggestions at all); they are never raised. Only a
failed save is reported, as SaveResult(success=False).
"""

import asyncio
import logging
from datetime import date, datetime, timedelta
from typing import List, Optional, Set

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from loadmatch.app.core.config import settings
from loadmatch.app.db.session import dialect_name
from loadmatch.app.domain.matching import queries
from loadmatch.app.domain.matching.cost_estimator import CostEstimator
from loadmatch.app.domain.matching.pay_config import pay_config_from_driver
from loadmatch.app.domain.matching.scoring import ScoringEngine
from loadmatch.app.domain.matching.types import (
    Coordinates,
    CurrentLocation,
    DeliveryDestination,
    MatchingPreferences,
    SaveResult,
    ScoredSuggestion,
    TripMatchingContext,
)
from loadmatch.app.models.load import Load
from loadmatch.app.models.load_suggestion import LoadSuggestion
from loadmatch.app.models.matching_enums import PostingStatus, SuggestionStatus
from loadmatch.app.services.geocoding import GeoResolver

logger = logging.getLogger(__name__)

# Columns overwritten when a later run re-suggests the same load
UPSERT_COLUMNS = [
    "owner_id",
    "company_id",
    "driver_id",
    "suggestion_type",
    "distance_to_pickup_miles",
    "load_miles",
    "total_miles",
    "revenue_estimate",
    "driver_cost_estimate",
    "fuel_cost_estimate",
    "profit_estimate",
    "profit_per_mile",
    "capacity_fit_percent",
    "match_score",
    "score_breakdown",
    "status",
    "expires_at",
]


async def build_matching_context(
    db: AsyncSession,
    trip_id: int,
    user_id: int,
) -> Optional[TripMatchingContext]:
    """
    Build the matching context for a trip owned by user_id.
    
    Returns:
        The context, or None if the trip does not exist, is not owned by
        the user, or could not be read.
    """
    try:
        trip = await queries.get_owned_trip(db, trip_id, user_id)
        if not trip:
            logger.info("Trip %s not found for user %s; nothing to match", trip_id, user_id)
            return None
        
        driver = await queries.get_driver(db, trip.driver_id)
        trailer = await queries.get_trailer(db, trip.trailer_id)
        attached_loads = await queries.get_trip_loads(db, trip.id)
        company_id = await queries.get_user_company_id(db, user_id)
    except SQLAlchemyError:
        logger.exception("Failed to read trip %s for matching", trip_id)
        return None
    
    trailer_capacity = settings.default_trailer_capacity_cuft
    if trailer is not None and trailer.cubic_capacity:
        trailer_capacity = trailer.cubic_capacity
    
    loaded_cuft = 0.0
    for load in attached_loads:
        cuft = load.actual_cuft_loaded if load.actual_cuft_loaded is not None else load.cubic_feet
        loaded_cuft += cuft or 0.0
    
    if trip.remaining_capacity_cuft is not None:
        remaining = trip.remaining_capacity_cuft
    else:
        remaining = trailer_capacity - loaded_cuft
    # Never negative, never above the trailer
    remaining = min(max(0.0, remaining), trailer_capacity)
    
    current_location = None
    if trip.current_location_lat is not None and trip.current_location_lng is not None:
        current_location = CurrentLocation(
            lat=trip.current_location_lat,
            lng=trip.current_location_lng,
            city=trip.current_location_city,
            state=trip.current_location_state,
        )
    
    return TripMatchingContext(
        trip_id=trip.id,
        driver_id=trip.driver_id,
        company_id=company_id,
        owner_id=user_id,
        current_location=current_location,
        delivery_destinations=[
            DeliveryDestination(
                city=load.delivery_city,
                state=load.delivery_state,
                zip=load.delivery_zip,
                expected_date=load.delivery_date,
                load_id=load.id,
            )
            for load in attached_loads
        ],
        trailer_capacity_cuft=trailer_capacity,
        remaining_capacity_cuft=remaining,
        driver_pay_config=pay_config_from_driver(driver),
        return_route_preference=trip.return_route_preference or [],
    )


async def fetch_candidate_loads(db: AsyncSession, context: TripMatchingContext) -> List[Load]:
    """Posted, unassigned loads from other owners with a pickup today or later."""
    result = await db.execute(
        select(Load)
        .where(
            Load.posting_status == PostingStatus.POSTED,
            Load.assigned_carrier_id.is_(None),
            Load.owner_id != context.owner_id,
            Load.pickup_date >= date.today(),
        )
        .order_by(Load.id)
    )
    return list(result.scalars().all())


async def find_matching_loads(
    db: AsyncSession,
    geo: GeoResolver,
    context: TripMatchingContext,
    preferences: Optional[MatchingPreferences] = None,
) -> List[ScoredSuggestion]:
    """
    Find and rank loads for a trip.
    
    Returns:
        At most settings.max_suggestions suggestions scoring at least
        preferences.min_match_score, highest score first. Empty when the
        final delivery is unknown or cannot be geocoded.
    """
    prefs = preferences or MatchingPreferences()
    
    final_delivery = context.final_delivery
    if not final_delivery or (not final_delivery.city and not final_delivery.zip):
        logger.info("Trip %s has no final delivery destination", context.trip_id)
        return []
    
    delivery_result = await geo.geocode(final_delivery.city, final_delivery.state, final_delivery.zip)
    if not delivery_result.success or not delivery_result.coordinates:
        logger.info("Could not geocode final delivery for trip %s", context.trip_id)
        return []
    delivery_coords = delivery_result.coordinates
    
    try:
        candidates = await fetch_candidate_loads(db, context)
    except SQLAlchemyError:
        logger.exception("Failed to fetch candidate loads for trip %s", context.trip_id)
        return []
    
    if not candidates:
        logger.info("No posted loads available for trip %s", context.trip_id)
        return []
    
    try:
        partner_ids = await queries.get_partner_company_ids(db, context.company_id)
    except SQLAlchemyError:
        logger.exception("Failed to fetch partnerships for company %s", context.company_id)
        partner_ids = set()
    
    # Candidates are independent; bound the fan-out to spare the geocoder
    semaphore = asyncio.Semaphore(settings.geocode_concurrency)
    
    async def score_candidate(load: Load) -> Optional[ScoredSuggestion]:
        async with semaphore:
            return await score_load_for_trip(geo, load, context, prefs, delivery_coords, partner_ids)
    
    scored = await asyncio.gather(*(score_candidate(load) for load in candidates))
    
    suggestions = [s for s in scored if s is not None and s.match_score >= prefs.min_match_score]
    suggestions.sort(key=lambda s: s.match_score, reverse=True)
    
    logger.info(
        "Trip %s: %d candidates, %d suggestions",
        context.trip_id, len(candidates), len(suggestions),
    )
    return suggestions[:settings.max_suggestions]


async def score_load_for_trip(
    geo: GeoResolver,
    load: Load,
    context: TripMatchingContext,
    preferences: MatchingPreferences,
    delivery_coords: Coordinates,
    partner_ids: Set[int],
) -> Optional[ScoredSuggestion]:
    """
    Filter and score one candidate.
    
    Each gate returns None as soon as the load is ruled out, so later
    (more expensive) steps only run for plausible loads.
    """
    excluded = {state.upper() for state in preferences.excluded_states}
    if (load.pickup_state and load.pickup_state.upper() in excluded) or (
        load.delivery_state and load.delivery_state.upper() in excluded
    ):
        logger.debug("Load %s rejected: excluded state", load.id)
        return None
    
    pickup_result = await geo.geocode(load.pickup_city, load.pickup_state, load.pickup_zip)
    if not pickup_result.success or not pickup_result.coordinates:
        logger.debug("Load %s rejected: pickup not geocodable", load.id)
        return None
    pickup_coords = pickup_result.coordinates
    
    deadhead = geo.distance(delivery_coords, pickup_coords)
    if deadhead > preferences.max_deadhead_miles:
        logger.debug("Load %s rejected: deadhead %.1f mi", load.id, deadhead)
        return None
    
    dropoff_result = await geo.geocode(load.delivery_city, load.delivery_state, load.delivery_zip)
    if not dropoff_result.success or not dropoff_result.coordinates:
        logger.debug("Load %s rejected: dropoff not geocodable", load.id)
        return None
    
    load_distance = geo.distance(pickup_coords, dropoff_result.coordinates)
    
    cubic_feet = load.cubic_feet or 0.0
    remaining = context.remaining_capacity_cuft
    if cubic_feet > remaining:
        logger.debug("Load %s rejected: %.0f cuft exceeds %.0f remaining", load.id, cubic_feet, remaining)
        return None
    
    capacity_fit = (cubic_feet / remaining) * 100 if remaining > 0 else 0.0
    if not (preferences.min_capacity_utilization <= capacity_fit <= preferences.max_capacity_utilization):
        logger.debug("Load %s rejected: utilization %.1f%%", load.id, capacity_fit)
        return None
    
    if load.total_rate is not None:
        revenue = load.total_rate
    elif load.balance_due is not None:
        revenue = load.balance_due
    else:
        revenue = cubic_feet * (load.rate_per_cuft or 0.0)
    
    total_miles = deadhead + load_distance
    estimated_days = CostEstimator.estimate_days_for_load(total_miles)
    costs = CostEstimator.estimate(
        context.driver_pay_config,
        total_miles,
        cubic_feet,
        revenue,
        estimated_days,
    )
    
    profit = revenue - costs.total_cost
    profit_per_mile = profit / total_miles if total_miles > 0 else 0.0
    if profit_per_mile < preferences.min_profit_per_mile:
        logger.debug("Load %s rejected: %.2f $/mi", load.id, profit_per_mile)
        return None
    
    load_company_id = load.posted_by_company_id if load.posted_by_company_id is not None else load.company_id
    
    breakdown = ScoringEngine.score(
        deadhead,
        profit_per_mile,
        capacity_fit,
        load.delivery_state,
        context.return_route_preference,
        preferences.preferred_return_states,
        load_company_id,
        partner_ids,
    )
    
    return ScoredSuggestion(
        load_id=load.id,
        suggestion_type=ScoringEngine.determine_suggestion_type(breakdown),
        distance_to_pickup_miles=round(deadhead, 1),
        load_miles=round(load_distance, 1),
        total_miles=round(total_miles, 1),
        revenue_estimate=round(revenue, 2),
        driver_cost_estimate=costs.driver_cost,
        fuel_cost_estimate=costs.fuel_cost,
        profit_estimate=round(profit, 2),
        profit_per_mile=round(profit_per_mile, 4),
        capacity_fit_percent=round(capacity_fit, 1),
        match_score=ScoringEngine.match_score(breakdown),
        score_breakdown=breakdown,
        pickup_city=load.pickup_city,
        pickup_state=load.pickup_state,
        delivery_city=load.delivery_city,
        delivery_state=load.delivery_state,
        cubic_feet=load.cubic_feet,
        load_company_id=load_company_id,
    )


async def save_suggestions(
    db: AsyncSession,
    trip_id: int,
    company_id: Optional[int],
    driver_id: Optional[int],
    owner_id: int,
    suggestions: List[ScoredSuggestion],
) -> SaveResult:
    """
    Upsert suggestions for a trip in a single statement.
    
    Every row gets status pending and expires settings.suggestion_ttl_hours
    from now. Rows for loads not in this batch are left alone.
    """
    if not suggestions:
        return SaveResult(success=True, count=0)
    
    expires_at = datetime.utcnow() + timedelta(hours=settings.suggestion_ttl_hours)
    
    records = [
        {
            "owner_id": owner_id,
            "trip_id": trip_id,
            "company_id": company_id,
            "driver_id": driver_id,
            "load_id": s.load_id,
            "suggestion_type": s.suggestion_type,
            "distance_to_pickup_miles": s.distance_to_pickup_miles,
            "load_miles": s.load_miles,
            "total_miles": s.total_miles,
            "revenue_estimate": s.revenue_estimate,
            "driver_cost_estimate": s.driver_cost_estimate,
            "fuel_cost_estimate": s.fuel_cost_estimate,
            "profit_estimate": s.profit_estimate,
            "profit_per_mile": s.profit_per_mile,
            "capacity_fit_percent": s.capacity_fit_percent,
            "match_score": s.match_score,
            "score_breakdown": s.score_breakdown.model_dump(),
            "status": SuggestionStatus.PENDING,
            "expires_at": expires_at,
        }
        for s in suggestions
    ]
    
    insert = sqlite_insert if dialect_name(db) == "sqlite" else pg_insert
    stmt = insert(LoadSuggestion).values(records)
    stmt = stmt.on_conflict_do_update(
        index_elements=["trip_id", "load_id"],
        set_={column: stmt.excluded[column] for column in UPSERT_COLUMNS},
    )
    
    try:
        await db.execute(stmt)
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("Error saving suggestions for trip %s: %s", trip_id, exc)
        return SaveResult(success=False, count=0, error=str(exc))
    
    return SaveResult(success=True, count=len(suggestions))


class MatchingRun:
    """Outcome of run_matching: the ranked suggestions and how many were saved."""
    
    def __init__(self, context: TripMatchingContext, suggestions: List[ScoredSuggestion], save_result: SaveResult):
        self.context = context
        self.suggestions = suggestions
        self.save_result = save_result


async def run_matching(
    db: AsyncSession,
    geo: GeoResolver,
    trip_id: int,
    user_id: int,
    overrides: Optional[dict] = None,
) -> Optional[MatchingRun]:
    """
    Full matching pass for one trip: context, preferences, search, save.
    
    Returns:
        None when there is no context for the trip (missing, not owned,
        or unreadable).
    """
    context = await build_matching_context(db, trip_id, user_id)
    if context is None:
        return None
    
    try:
        preferences = await queries.load_matching_preferences(db, context.company_id, overrides)
    except SQLAlchemyError:
        logger.exception("Failed to read matching settings for company %s", context.company_id)
        preferences = queries.preferences_from_settings(None, overrides)
    
    suggestions = await find_matching_loads(db, geo, context, preferences)
    save_result = await save_suggestions(
        db,
        context.trip_id,
        context.company_id,
        context.driver_id,
        context.owner_id,
        suggestions,
    )
    return MatchingRun(context, suggestions, save_result)
