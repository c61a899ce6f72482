"""
Scoring Engine.

Scores a candidate load on five step functions and labels it with a
suggestion type. Step functions (rather than continuous curves) keep
scores stable under small changes in distance or price.

    proximity  0-25   deadhead from final delivery to pickup
    profit     0-25   estimated profit per mile
    capacity   0-20   share of remaining capacity the load would use
    route      0-20   dropoff state vs return preferences
    partner    0-10   load posted by an active partner company
"""

from typing import Iterable, Optional, Set

from loadmatch.app.domain.matching.types import ScoreBreakdown
from loadmatch.app.models.matching_enums import SuggestionType

MAX_MATCH_SCORE = 100
MIN_MATCH_SCORE = 5


def proximity_score(distance_to_pickup: float) -> int:
    if distance_to_pickup <= 25:
        return 25
    if distance_to_pickup <= 50:
        return 20
    if distance_to_pickup <= 75:
        return 15
    if distance_to_pickup <= 100:
        return 10
    return 5


def profit_score(profit_per_mile: float) -> int:
    if profit_per_mile >= 2.5:
        return 25
    if profit_per_mile >= 2.0:
        return 20
    if profit_per_mile >= 1.5:
        return 15
    if profit_per_mile >= 1.25:
        return 10
    return 5


def capacity_score(capacity_fit_percent: float) -> int:
    # 60-90% is full without being crammed
    if 60 <= capacity_fit_percent <= 90:
        return 20
    if 40 <= capacity_fit_percent <= 95:
        return 15
    return 10


def route_score(
    dropoff_state: Optional[str],
    return_route_preference: Iterable[str],
    preferred_return_states: Iterable[str],
) -> int:
    state = (dropoff_state or "").strip().upper()
    if state:
        if state in _state_codes(return_route_preference):
            return 20
        if state in _state_codes(preferred_return_states):
            return 15
    return 5


def _state_codes(states: Iterable[str]) -> Set[str]:
    return {s.strip().upper() for s in states if s}


def partner_score(load_company_id: Optional[int], partner_ids: Set[int]) -> int:
    return 10 if load_company_id is not None and load_company_id in partner_ids else 0


class ScoringEngine:

    @staticmethod
    def score(
        distance_to_pickup: float,
        profit_per_mile: float,
        capacity_fit_percent: float,
        dropoff_state: Optional[str],
        return_route_preference: Iterable[str],
        preferred_return_states: Iterable[str],
        load_company_id: Optional[int],
        partner_ids: Set[int],
    ) -> ScoreBreakdown:
        """Compute all five sub-scores for one candidate."""
        return ScoreBreakdown(
            proximity_score=proximity_score(distance_to_pickup),
            profit_score=profit_score(profit_per_mile),
            capacity_score=capacity_score(capacity_fit_percent),
            route_score=route_score(
                dropoff_state, list(return_route_preference), list(preferred_return_states)
            ),
            partner_score=partner_score(load_company_id, partner_ids),
        )

    @staticmethod
    def match_score(breakdown: ScoreBreakdown) -> int:
        return breakdown.total

    @staticmethod
    def determine_suggestion_type(breakdown: ScoreBreakdown) -> SuggestionType:
        """
        Label a scored candidate. First matching rule wins, so a partner
        load is always partner_load even when it is also high profit.
        """
        if breakdown.partner_score > 0:
            return SuggestionType.PARTNER_LOAD
        if breakdown.profit_score >= 20:
            return SuggestionType.HIGH_PROFIT
        if breakdown.route_score >= 15:
            return SuggestionType.BACKHAUL
        if breakdown.capacity_score >= 18:
            return SuggestionType.CAPACITY_FIT
        return SuggestionType.NEAR_DELIVERY
