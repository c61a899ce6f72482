"""
Along-route load search.

Unlike the matching engine, which looks for work after the final
delivery, this finds marketplace loads whose pickup sits close to the
trip's own origin -> destination line, ranked by the extra miles a stop
would add.
"""

import logging
from typing import Optional

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from loadmatch.app.domain.matching import queries
from loadmatch.app.domain.matching.types import (
    RouteCapacity,
    RouteEndpoint,
    RouteLoad,
    RouteLoadsResult,
)
from loadmatch.app.models.load import Load
from loadmatch.app.models.matching_enums import PostingStatus
from loadmatch.app.services.geocoding import GeoResolver

logger = logging.getLogger(__name__)


async def find_loads_along_route(
    db: AsyncSession,
    geo: GeoResolver,
    trip_id: int,
    user_id: int,
    max_detour: Optional[float] = None,
    max_cuft: Optional[float] = None,
) -> Optional[RouteLoadsResult]:
    """
    Search marketplace loads along a trip's route.
    
    Args:
        max_detour: Added-miles ceiling; None means no limit
        max_cuft: Skip loads larger than this many cubic feet
    
    Returns:
        None when the trip does not exist for this user. A result with
        `error` set and no loads when the route cannot be geocoded.
    """
    trip = await queries.get_owned_trip(db, trip_id, user_id)
    if not trip:
        return None
    
    trip_loads = await queries.get_trip_loads(db, trip.id)
    first_load = trip_loads[0] if trip_loads else None
    last_load = trip_loads[-1] if trip_loads else None
    
    # Trip fields win; otherwise derive endpoints from the attached loads
    origin = RouteEndpoint(
        city=trip.origin_city or (first_load.pickup_city if first_load else None),
        state=trip.origin_state or (first_load.pickup_state if first_load else None),
        zip=trip.origin_zip or (first_load.pickup_zip if first_load else None),
        is_derived=not trip.origin_city and bool(first_load and first_load.pickup_city),
    )
    destination = RouteEndpoint(
        city=trip.destination_city or (last_load.delivery_city if last_load else None),
        state=trip.destination_state or (last_load.delivery_state if last_load else None),
        zip=trip.destination_zip or (last_load.delivery_zip if last_load else None),
        is_derived=not trip.destination_city and bool(last_load and last_load.delivery_city),
    )
    
    origin_result = await geo.geocode(origin.city, origin.state, origin.zip)
    destination_result = await geo.geocode(destination.city, destination.state, destination.zip)
    if not origin_result.success or not destination_result.success:
        logger.info("Route for trip %s could not be geocoded", trip_id)
        return RouteLoadsResult(
            trip_id=trip.id,
            origin=origin,
            destination=destination,
            max_detour=max_detour,
            error="Could not geocode trip locations. Add loads or set trip origin/destination.",
        )
    
    origin.coords = origin_result.coordinates
    destination.coords = destination_result.coordinates
    
    trailer = await queries.get_trailer(db, trip.trailer_id)
    truck_capacity = trailer.cubic_capacity if trailer and trailer.cubic_capacity else 0.0
    used_capacity = sum(load.cubic_feet or 0.0 for load in trip_loads)
    available_capacity = truck_capacity - used_capacity
    
    company_id = await queries.get_user_company_id(db, user_id)
    query = select(Load).where(
        Load.is_marketplace_visible.is_(True),
        Load.posting_status == PostingStatus.POSTED,
        Load.assigned_carrier_id.is_(None),
    )
    if company_id is not None:
        query = query.where(or_(Load.company_id.is_(None), Load.company_id != company_id))
    result = await db.execute(query.order_by(Load.id))
    
    loads = []
    for load in result.scalars().all():
        if load.cubic_feet:
            if max_cuft is not None and load.cubic_feet > max_cuft:
                continue
            if load.cubic_feet > available_capacity:
                continue
        
        pickup = await geo.geocode(load.pickup_city, load.pickup_state, load.pickup_zip)
        if not pickup.success or not pickup.coordinates:
            continue
        
        added_miles = geo.added_miles(origin.coords, destination.coords, pickup.coordinates)
        if max_detour is not None and added_miles > max_detour:
            continue
        
        distance_from_route = min(
            geo.distance(origin.coords, pickup.coordinates),
            geo.distance(destination.coords, pickup.coordinates),
        )
        
        dropoff = await geo.geocode(load.delivery_city, load.delivery_state, load.delivery_zip)
        
        loads.append(RouteLoad(
            id=load.id,
            load_number=load.load_number,
            company_id=load.company_id,
            origin_city=load.pickup_city,
            origin_state=load.pickup_state,
            origin_zip=load.pickup_zip,
            destination_city=load.delivery_city,
            destination_state=load.delivery_state,
            destination_zip=load.delivery_zip,
            cubic_feet=load.cubic_feet,
            rate=load.rate_per_cuft or load.balance_due,
            rate_type="per_cuft" if load.rate_per_cuft else "flat",
            posting_type=load.posting_type or "load",
            added_miles=round(added_miles),
            distance_from_route=round(distance_from_route),
            origin_coords=pickup.coordinates,
            destination_coords=dropoff.coordinates if dropoff.success else None,
        ))
    
    loads.sort(key=lambda route_load: route_load.added_miles)
    
    return RouteLoadsResult(
        trip_id=trip.id,
        origin=origin,
        destination=destination,
        capacity=RouteCapacity(
            truck=truck_capacity,
            used=used_capacity,
            available=available_capacity,
        ),
        max_detour=max_detour,
        loads=loads,
    )
