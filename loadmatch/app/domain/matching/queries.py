"""
Read helpers for the matching engine.

Thin wrappers around the tables the engine consumes: users' companies,
partnerships, company settings, trips and their attached loads.
"""

from typing import Any, Dict, List, Optional, Set

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from loadmatch.app.domain.matching.types import MatchingPreferences
from loadmatch.app.models.company import CompanyPartnership, CompanyMatchingSettings
from loadmatch.app.models.fleet import Driver, Trailer
from loadmatch.app.models.load import Load
from loadmatch.app.models.matching_enums import PartnershipStatus
from loadmatch.app.models.trip import Trip, TripLoad
from loadmatch.app.models.user import User


async def get_user_company_id(db: AsyncSession, user_id: int) -> Optional[int]:
    result = await db.execute(select(User.company_id).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_partner_company_ids(db: AsyncSession, company_id: Optional[int]) -> Set[int]:
    """IDs of every company with an active partnership with company_id."""
    if company_id is None:
        return set()
    
    result = await db.execute(
        select(CompanyPartnership.company_a_id, CompanyPartnership.company_b_id).where(
            or_(
                CompanyPartnership.company_a_id == company_id,
                CompanyPartnership.company_b_id == company_id,
            ),
            CompanyPartnership.status == PartnershipStatus.ACTIVE,
        )
    )
    
    partner_ids = set()
    for company_a_id, company_b_id in result.all():
        if company_a_id != company_id:
            partner_ids.add(company_a_id)
        if company_b_id != company_id:
            partner_ids.add(company_b_id)
    return partner_ids


async def get_company_settings(db: AsyncSession, company_id: Optional[int]) -> Optional[CompanyMatchingSettings]:
    if company_id is None:
        return None
    result = await db.execute(
        select(CompanyMatchingSettings).where(CompanyMatchingSettings.company_id == company_id)
    )
    return result.scalar_one_or_none()


def preferences_from_settings(
    company_settings: Optional[CompanyMatchingSettings],
    overrides: Optional[Dict[str, Any]] = None,
) -> MatchingPreferences:
    """
    Build run preferences: defaults, then the company row, then overrides.
    
    Override keys that are None are ignored.
    """
    values: Dict[str, Any] = {}
    if company_settings is not None:
        values = {
            "min_profit_per_mile": company_settings.min_profit_per_mile,
            "max_deadhead_miles": company_settings.max_deadhead_miles,
            "min_match_score": company_settings.min_match_score,
            "preferred_return_states": company_settings.preferred_return_states or [],
            "excluded_states": company_settings.excluded_states or [],
            "min_capacity_utilization": company_settings.min_capacity_utilization_percent,
            "max_capacity_utilization": company_settings.max_capacity_utilization_percent,
        }
        values = {key: value for key, value in values.items() if value is not None}
    
    for key, value in (overrides or {}).items():
        if value is not None:
            values[key] = value
    
    return MatchingPreferences(**values)


async def load_matching_preferences(
    db: AsyncSession,
    company_id: Optional[int],
    overrides: Optional[Dict[str, Any]] = None,
) -> MatchingPreferences:
    company_settings = await get_company_settings(db, company_id)
    return preferences_from_settings(company_settings, overrides)


async def get_owned_trip(db: AsyncSession, trip_id: int, owner_id: int) -> Optional[Trip]:
    result = await db.execute(
        select(Trip).where(Trip.id == trip_id, Trip.owner_id == owner_id)
    )
    return result.scalar_one_or_none()


async def get_trip(db: AsyncSession, trip_id: int) -> Optional[Trip]:
    return await db.get(Trip, trip_id)


async def get_driver(db: AsyncSession, driver_id: Optional[int]) -> Optional[Driver]:
    if driver_id is None:
        return None
    return await db.get(Driver, driver_id)


async def get_trailer(db: AsyncSession, trailer_id: Optional[int]) -> Optional[Trailer]:
    if trailer_id is None:
        return None
    return await db.get(Trailer, trailer_id)


async def get_trip_loads(db: AsyncSession, trip_id: int) -> List[Load]:
    """Loads attached to a trip, in delivery order."""
    result = await db.execute(
        select(Load)
        .join(TripLoad, TripLoad.load_id == Load.id)
        .where(TripLoad.trip_id == trip_id)
        .order_by(TripLoad.sequence_index, TripLoad.id)
    )
    return list(result.scalars().all())
