"""
Load matching schemas.

Request/response bodies for matching runs, stored suggestions, trip
visibility and company matching settings.
"""

from pydantic import BaseModel, Field, field_validator
from typing import Any, Dict, List, Optional
from datetime import datetime

from loadmatch.app.domain.matching.types import ScoredSuggestion, EffectiveVisibility
from loadmatch.app.models.matching_enums import (
    CapacityVisibility,
    NotificationPreference,
    SuggestionStatus,
    SuggestionType,
)


def _upper_states(states: Optional[List[str]]) -> Optional[List[str]]:
    if states is None:
        return None
    return [state.strip().upper() for state in states if state and state.strip()]


class MatchingOverrides(BaseModel):
    """Optional per-run preference overrides. Unset fields keep company values."""
    min_profit_per_mile: Optional[float] = None
    max_deadhead_miles: Optional[float] = Field(None, gt=0)
    min_match_score: Optional[float] = Field(None, ge=0, le=100)
    preferred_return_states: Optional[List[str]] = None
    excluded_states: Optional[List[str]] = None
    min_capacity_utilization: Optional[float] = Field(None, ge=0, le=100)
    max_capacity_utilization: Optional[float] = Field(None, ge=0, le=100)

    @field_validator("preferred_return_states", "excluded_states")
    @classmethod
    def normalize_states(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        return _upper_states(value)


class LoadMatchResponse(BaseModel):
    """Result of a matching run."""
    trip_id: int
    suggestions: List[ScoredSuggestion]
    saved_count: int


class LoadSuggestionResponse(BaseModel):
    """Schema for a stored suggestion."""
    id: int
    trip_id: int
    load_id: int
    driver_id: Optional[int]
    company_id: Optional[int]
    suggestion_type: SuggestionType
    distance_to_pickup_miles: Optional[float]
    load_miles: Optional[float]
    total_miles: Optional[float]
    revenue_estimate: Optional[float]
    driver_cost_estimate: Optional[float]
    fuel_cost_estimate: Optional[float]
    profit_estimate: Optional[float]
    profit_per_mile: Optional[float]
    capacity_fit_percent: Optional[float]
    match_score: float
    score_breakdown: Optional[Dict[str, Any]]
    status: SuggestionStatus
    created_at: datetime
    viewed_at: Optional[datetime]
    actioned_at: Optional[datetime]
    expires_at: Optional[datetime]
    
    class Config:
        from_attributes = True


class LoadSuggestionListResponse(BaseModel):
    suggestions: List[LoadSuggestionResponse]
    total: int


class LoadSuggestionStatusUpdate(BaseModel):
    """Status change requested by the user. pending/expired are system-owned."""
    status: SuggestionStatus

    @field_validator("status")
    @classmethod
    def status_is_user_settable(cls, value: SuggestionStatus) -> SuggestionStatus:
        if value in (SuggestionStatus.PENDING, SuggestionStatus.EXPIRED):
            raise ValueError(f"Status '{value.value}' cannot be set directly")
        return value


class TripVisibilityResponse(BaseModel):
    trip_id: int
    visibility: EffectiveVisibility


class TripCapacityResponse(BaseModel):
    """Capacity of a trip as seen by another company."""
    trip_id: int
    capacity_visibility: CapacityVisibility
    trailer_capacity_cuft: float
    remaining_capacity_cuft: float
    current_city: Optional[str] = None
    current_state: Optional[str] = None


class MatchingSettingsResponse(BaseModel):
    """Schema for a company's matching settings."""
    company_id: int
    min_profit_per_mile: float
    max_deadhead_miles: float
    min_match_score: float
    preferred_return_states: List[str]
    excluded_states: List[str]
    min_capacity_utilization_percent: float
    max_capacity_utilization_percent: float
    notification_preference: NotificationPreference
    auto_post_capacity_enabled: bool
    auto_post_min_capacity_cuft: float
    default_location_sharing: Optional[bool]
    default_capacity_visibility: Optional[CapacityVisibility]
    
    class Config:
        from_attributes = True


class MatchingSettingsUpdate(BaseModel):
    """Partial update; only provided fields are written."""
    min_profit_per_mile: Optional[float] = Field(None, ge=0)
    max_deadhead_miles: Optional[float] = Field(None, gt=0)
    min_match_score: Optional[float] = Field(None, ge=0, le=100)
    preferred_return_states: Optional[List[str]] = None
    excluded_states: Optional[List[str]] = None
    min_capacity_utilization_percent: Optional[float] = Field(None, ge=0, le=100)
    max_capacity_utilization_percent: Optional[float] = Field(None, ge=0, le=100)
    notification_preference: Optional[NotificationPreference] = None
    auto_post_capacity_enabled: Optional[bool] = None
    auto_post_min_capacity_cuft: Optional[float] = Field(None, ge=0)
    default_location_sharing: Optional[bool] = None
    default_capacity_visibility: Optional[CapacityVisibility] = None

    @field_validator("preferred_return_states", "excluded_states")
    @classmethod
    def normalize_states(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        return _upper_states(value)
