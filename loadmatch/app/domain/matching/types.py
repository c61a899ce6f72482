"""
Value types shared by the matching engine.

These are plain Pydantic models: the engine builds them, the API layer
serializes them as-is.
"""

from datetime import date
from typing import List, Optional

from pydantic import BaseModel, Field

from loadmatch.app.domain.matching.pay_config import DriverPayConfig
from loadmatch.app.models.matching_enums import CapacityVisibility, SuggestionType


class Coordinates(BaseModel):
    lat: float
    lng: float
    city: Optional[str] = None
    state: Optional[str] = None


class GeocodingResult(BaseModel):
    success: bool
    coordinates: Optional[Coordinates] = None
    error: Optional[str] = None


class CurrentLocation(BaseModel):
    """Live GPS fix. Informational only; scoring uses the final delivery."""
    lat: float
    lng: float
    city: Optional[str] = None
    state: Optional[str] = None


class DeliveryDestination(BaseModel):
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    expected_date: Optional[date] = None
    load_id: Optional[int] = None


class TripMatchingContext(BaseModel):
    """
    Everything a matching run needs to know about one trip.
    
    delivery_destinations is in delivery order; the last entry is the
    final delivery and the reference point for deadhead.
    """
    trip_id: int
    driver_id: Optional[int]
    company_id: Optional[int]
    owner_id: int
    current_location: Optional[CurrentLocation] = None
    delivery_destinations: List[DeliveryDestination] = Field(default_factory=list)
    trailer_capacity_cuft: float
    remaining_capacity_cuft: float
    driver_pay_config: DriverPayConfig
    return_route_preference: List[str] = Field(default_factory=list)

    @property
    def final_delivery(self) -> Optional[DeliveryDestination]:
        if not self.delivery_destinations:
            return None
        return self.delivery_destinations[-1]


class MatchingPreferences(BaseModel):
    """Per-run tunables. Utilizations are percentages of remaining capacity."""
    min_profit_per_mile: float = 1.0
    max_deadhead_miles: float = 150
    min_match_score: float = 50
    preferred_return_states: List[str] = Field(default_factory=list)
    excluded_states: List[str] = Field(default_factory=list)
    min_capacity_utilization: float = 30
    max_capacity_utilization: float = 100


class ScoreBreakdown(BaseModel):
    proximity_score: int
    profit_score: int
    capacity_score: int
    route_score: int
    partner_score: int

    @property
    def total(self) -> int:
        return (
            self.proximity_score
            + self.profit_score
            + self.capacity_score
            + self.route_score
            + self.partner_score
        )


class CostBreakdown(BaseModel):
    """Each pay term separately; terms that do not apply are zero."""
    mileage_pay: float = 0.0
    cuft_pay: float = 0.0
    revenue_share_pay: float = 0.0
    daily_pay: float = 0.0
    fallback_pay: float = 0.0
    fuel_cost: float = 0.0


class CostEstimate(BaseModel):
    driver_cost: float
    fuel_cost: float
    total_cost: float
    breakdown: CostBreakdown


class ScoredSuggestion(BaseModel):
    load_id: int
    suggestion_type: SuggestionType

    # Distance metrics (miles)
    distance_to_pickup_miles: float
    load_miles: float
    total_miles: float

    # Financial metrics
    revenue_estimate: float
    driver_cost_estimate: float
    fuel_cost_estimate: float
    profit_estimate: float
    profit_per_mile: float

    capacity_fit_percent: float

    match_score: float
    score_breakdown: ScoreBreakdown

    # Display fields carried from the load
    pickup_city: Optional[str] = None
    pickup_state: Optional[str] = None
    delivery_city: Optional[str] = None
    delivery_state: Optional[str] = None
    cubic_feet: Optional[float] = None
    load_company_id: Optional[int] = None


class SaveResult(BaseModel):
    success: bool
    count: int = 0
    error: Optional[str] = None


class EffectiveVisibility(BaseModel):
    share_location: bool
    share_capacity: bool
    capacity_visibility: CapacityVisibility


class RouteLoad(BaseModel):
    """Marketplace load found along a trip's planned route."""
    id: int
    load_number: Optional[str] = None
    company_id: Optional[int] = None
    origin_city: Optional[str] = None
    origin_state: Optional[str] = None
    origin_zip: Optional[str] = None
    destination_city: Optional[str] = None
    destination_state: Optional[str] = None
    destination_zip: Optional[str] = None
    cubic_feet: Optional[float] = None
    rate: Optional[float] = None
    rate_type: str
    posting_type: str = "load"
    added_miles: int
    distance_from_route: int
    origin_coords: Optional[Coordinates] = None
    destination_coords: Optional[Coordinates] = None


class RouteEndpoint(BaseModel):
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    coords: Optional[Coordinates] = None
    is_derived: bool = False


class RouteCapacity(BaseModel):
    truck: float
    used: float
    available: float


class RouteLoadsResult(BaseModel):
    trip_id: int
    origin: RouteEndpoint
    destination: RouteEndpoint
    capacity: Optional[RouteCapacity] = None
    max_detour: Optional[float] = None
    loads: List[RouteLoad] = Field(default_factory=list)
    error: Optional[str] = None
