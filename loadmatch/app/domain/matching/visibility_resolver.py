"""
Visibility Resolver.

Determines whether a trip shares its location and spare capacity, and
with whom. Each setting is resolved through an override chain:

    trip -> driver -> company default -> hardcoded default

Only an unset value (None) falls through. An explicit False at the trip
level is final even when the driver or company says True.
"""

from typing import Any, Iterable, Optional

from loadmatch.app.domain.matching.types import EffectiveVisibility
from loadmatch.app.models.matching_enums import CapacityVisibility


def first_set(sources: Iterable[Optional[Any]], default: Any) -> Any:
    """Return the first source that is not None, else the default."""
    for value in sources:
        if value is not None:
            return value
    return default


class VisibilityResolver:

    @staticmethod
    def get_effective_visibility(trip, driver, company_settings) -> EffectiveVisibility:
        """
        Resolve a trip's effective sharing settings.
        
        Any of trip, driver or company_settings may be None.
        
        share_capacity has no company-level term: it resolves from the
        trip, then the driver, then False.
        """
        share_location = first_set(
            [
                getattr(trip, "share_location", None),
                getattr(driver, "location_sharing_enabled", None),
                getattr(company_settings, "default_location_sharing", None),
            ],
            default=False,
        )
        share_capacity = first_set(
            [
                getattr(trip, "share_capacity", None),
                getattr(driver, "auto_post_capacity", None),
            ],
            default=False,
        )
        capacity_visibility = first_set(
            [
                getattr(trip, "trip_capacity_visibility", None),
                getattr(driver, "capacity_visibility", None),
                getattr(company_settings, "default_capacity_visibility", None),
            ],
            default=CapacityVisibility.PRIVATE,
        )
        
        return EffectiveVisibility(
            share_location=share_location,
            share_capacity=share_capacity,
            capacity_visibility=CapacityVisibility(capacity_visibility),
        )

    @staticmethod
    def is_capacity_visible_to(
        visibility: CapacityVisibility,
        requesting_company_id: Optional[int],
        owner_company_id: Optional[int],
        partner_company_ids: Iterable[int],
    ) -> bool:
        """
        Can requesting_company_id see capacity owned by owner_company_id?
        
        private: owner only. partners_only: owner or an active partner.
        public: anyone.
        """
        visibility = CapacityVisibility(visibility)
        
        if visibility == CapacityVisibility.PUBLIC:
            return True
        
        is_owner = requesting_company_id is not None and requesting_company_id == owner_company_id
        if visibility == CapacityVisibility.PRIVATE:
            return is_owner
        
        return is_owner or requesting_company_id in set(partner_company_ids)
