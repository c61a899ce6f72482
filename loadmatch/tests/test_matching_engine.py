"""
Matching engine tests.

Runs the engine against the in-memory database and the fake geocoding
provider. The base trip delivers its last load to Dallas with 3200 cu ft
free; the default candidate goes Fort Worth -> Houston (2400 cu ft).
"""

import math
from datetime import date, datetime, timedelta

import pytest
from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError

from loadmatch.app.domain.matching import engine
from loadmatch.app.domain.matching.engine import (
    build_matching_context,
    find_matching_loads,
    run_matching,
    save_suggestions,
    score_load_for_trip,
)
from loadmatch.app.domain.matching.pay_config import PerMilePay, UnknownPay
from loadmatch.app.domain.matching.scoring import ScoringEngine
from loadmatch.app.domain.matching.types import Coordinates, MatchingPreferences
from loadmatch.app.models.company import CompanyMatchingSettings
from loadmatch.app.models.load_suggestion import LoadSuggestion
from loadmatch.app.models.matching_enums import PostingStatus, SuggestionStatus, SuggestionType
from loadmatch.app.models.trip import Trip, TripLoad
from loadmatch.app.services.geocoding import EARTH_RADIUS_MILES, calculate_distance

DALLAS = Coordinates(lat=32.7767, lng=-96.7970)
FORT_WORTH = Coordinates(lat=32.7555, lng=-97.3308)
HOUSTON = Coordinates(lat=29.7604, lng=-95.3698)


@pytest.fixture
async def context(db_session, marketplace):
    return await build_matching_context(db_session, marketplace["trip"].id, marketplace["owner"].id)


async def add_loads(db_session, loads):
    db_session.add_all(loads)
    await db_session.commit()
    return loads


def partner_load(marketplace, load_factory, **overrides):
    values = dict(
        owner_id=marketplace["partner_user"].id,
        company_id=marketplace["partner"].id,
        posted_by_company_id=marketplace["partner"].id,
    )
    values.update(overrides)
    return load_factory(**values)


def stranger_load(marketplace, load_factory, **overrides):
    values = dict(
        owner_id=marketplace["stranger_user"].id,
        company_id=marketplace["stranger"].id,
    )
    values.update(overrides)
    return load_factory(**values)


# --- context -----------------------------------------------------------------

async def test_build_matching_context(context, marketplace):
    assert context.trip_id == marketplace["trip"].id
    assert context.owner_id == marketplace["owner"].id
    assert context.company_id == marketplace["carrier"].id
    assert context.trailer_capacity_cuft == 4200
    assert context.remaining_capacity_cuft == 3200
    assert context.driver_pay_config == PerMilePay(rate_per_mile=0.60)
    assert context.return_route_preference == ["TX"]
    assert context.current_location is None
    assert context.final_delivery.zip == "75201"
    assert context.final_delivery.load_id == marketplace["attached_load"].id


async def test_context_prefers_actual_loaded_volume(db_session, marketplace):
    marketplace["attached_load"].actual_cuft_loaded = 1500
    await db_session.commit()
    
    context = await build_matching_context(db_session, marketplace["trip"].id, marketplace["owner"].id)
    
    assert context.remaining_capacity_cuft == 2700


async def test_context_remaining_capacity_is_clamped(db_session, marketplace):
    marketplace["attached_load"].cubic_feet = 5000
    await db_session.commit()
    
    context = await build_matching_context(db_session, marketplace["trip"].id, marketplace["owner"].id)
    
    assert context.remaining_capacity_cuft == 0


async def test_context_trip_override_wins(db_session, marketplace):
    trip = marketplace["trip"]
    trip.remaining_capacity_cuft = 900
    trip.current_location_lat = 32.9
    trip.current_location_lng = -97.0
    await db_session.commit()
    
    context = await build_matching_context(db_session, trip.id, marketplace["owner"].id)
    
    assert context.remaining_capacity_cuft == 900
    assert context.current_location.lat == 32.9


async def test_context_orders_deliveries_by_sequence(db_session, marketplace, load_factory):
    later = load_factory(
        owner_id=marketplace["owner"].id,
        delivery_city="Houston", delivery_state="TX", delivery_zip="77002",
        cubic_feet=200, posting_status=PostingStatus.ASSIGNED,
    )
    await add_loads(db_session, [later])
    db_session.add(TripLoad(trip_id=marketplace["trip"].id, load_id=later.id, sequence_index=1))
    await db_session.commit()
    
    context = await build_matching_context(db_session, marketplace["trip"].id, marketplace["owner"].id)
    
    assert [d.zip for d in context.delivery_destinations] == ["75201", "77002"]
    assert context.final_delivery.zip == "77002"
    assert context.remaining_capacity_cuft == 3000


async def test_context_unknown_pay_mode(db_session, marketplace):
    marketplace["driver"].pay_mode = "hourly"
    await db_session.commit()
    
    context = await build_matching_context(db_session, marketplace["trip"].id, marketplace["owner"].id)
    
    assert context.driver_pay_config == UnknownPay(pay_mode="hourly")


async def test_context_is_none_for_other_users_trip(db_session, marketplace):
    assert await build_matching_context(db_session, marketplace["trip"].id, marketplace["stranger_user"].id) is None
    assert await build_matching_context(db_session, 999999, marketplace["owner"].id) is None


async def test_context_is_none_when_storage_fails(db_session, marketplace, mocker):
    mocker.patch.object(engine.queries, "get_owned_trip", side_effect=SQLAlchemyError("connection lost"))
    
    assert await build_matching_context(db_session, marketplace["trip"].id, marketplace["owner"].id) is None


# --- matching ----------------------------------------------------------------

async def test_partner_load_near_delivery(db_session, marketplace, load_factory, geo, context):
    load, = await add_loads(db_session, [partner_load(marketplace, load_factory)])
    
    suggestions = await find_matching_loads(db_session, geo, context)
    
    assert len(suggestions) == 1
    suggestion = suggestions[0]
    assert suggestion.load_id == load.id
    assert suggestion.distance_to_pickup_miles == pytest.approx(31.0, abs=0.5)
    assert suggestion.load_miles == pytest.approx(237, abs=3)
    assert suggestion.total_miles == pytest.approx(
        suggestion.distance_to_pickup_miles + suggestion.load_miles, abs=0.1
    )
    assert suggestion.capacity_fit_percent == 75.0
    assert suggestion.revenue_estimate == 2000
    assert suggestion.score_breakdown.proximity_score == 20
    assert suggestion.score_breakdown.profit_score == 25
    assert suggestion.score_breakdown.capacity_score == 20
    assert suggestion.score_breakdown.route_score == 20
    assert suggestion.score_breakdown.partner_score == 10
    assert suggestion.match_score == 95
    assert suggestion.suggestion_type == SuggestionType.PARTNER_LOAD
    assert suggestion.load_company_id == marketplace["partner"].id


async def test_costs_follow_driver_pay(db_session, marketplace, load_factory, geo, context):
    await add_loads(db_session, [stranger_load(marketplace, load_factory)])
    
    suggestion, = await find_matching_loads(db_session, geo, context)
    
    assert suggestion.driver_cost_estimate == pytest.approx(suggestion.total_miles * 0.60, abs=0.1)
    assert suggestion.fuel_cost_estimate == pytest.approx(suggestion.total_miles * 0.50, abs=0.1)
    assert suggestion.profit_estimate == pytest.approx(
        2000 - suggestion.driver_cost_estimate - suggestion.fuel_cost_estimate, abs=0.02
    )
    assert suggestion.suggestion_type == SuggestionType.HIGH_PROFIT


async def test_candidate_filters(db_session, marketplace, load_factory, geo, context):
    good, *_ = await add_loads(db_session, [
        stranger_load(marketplace, load_factory, load_number="GOOD"),
        # owner's own load
        load_factory(owner_id=marketplace["owner"].id, load_number="OWN"),
        stranger_load(marketplace, load_factory, load_number="PAST", pickup_date=date.today() - timedelta(days=1)),
        stranger_load(marketplace, load_factory, load_number="DRAFT", posting_status=PostingStatus.DRAFT),
        stranger_load(marketplace, load_factory, load_number="TAKEN", assigned_carrier_id=marketplace["partner"].id),
        stranger_load(marketplace, load_factory, load_number="FAR", pickup_city="Seattle", pickup_state="WA",
                      pickup_zip="98101"),
        stranger_load(marketplace, load_factory, load_number="BIG", cubic_feet=3500),
        stranger_load(marketplace, load_factory, load_number="SMALL", cubic_feet=500),
        stranger_load(marketplace, load_factory, load_number="CHEAP", total_rate=200),
        stranger_load(marketplace, load_factory, load_number="LOST", pickup_city="Atlantis", pickup_state="ZZ",
                      pickup_zip="00000"),
        stranger_load(marketplace, load_factory, load_number="NOWHERE", delivery_city="Atlantis",
                      delivery_state="ZZ", delivery_zip=None),
    ])
    
    suggestions = await find_matching_loads(db_session, geo, context)
    
    assert [s.load_id for s in suggestions] == [good.id]


async def test_capacity_gate_runs_before_scoring(geo, context, load_factory, mocker):
    score_spy = mocker.spy(ScoringEngine, "score")
    context.remaining_capacity_cuft = 500
    load = load_factory(id=1, owner_id=2, cubic_feet=600)
    dallas = Coordinates(lat=32.7767, lng=-96.7970)
    
    result = await score_load_for_trip(geo, load, context, MatchingPreferences(), dallas, set())
    
    assert result is None
    score_spy.assert_not_called()


async def test_excluded_states(db_session, marketplace, load_factory, geo, context):
    await add_loads(db_session, [stranger_load(marketplace, load_factory)])
    
    suggestions = await find_matching_loads(
        db_session, geo, context, MatchingPreferences(excluded_states=["tx"])
    )
    
    assert suggestions == []


async def test_min_match_score(db_session, marketplace, load_factory, geo, context):
    await add_loads(db_session, [
        partner_load(marketplace, load_factory),
        stranger_load(marketplace, load_factory),
    ])
    
    suggestions = await find_matching_loads(db_session, geo, context, MatchingPreferences(min_match_score=90))
    
    assert [s.match_score for s in suggestions] == [95]


@pytest.mark.parametrize("rates, expected_revenue", [
    (dict(total_rate=2100, balance_due=1800, rate_per_cuft=1.0), 2100),
    (dict(total_rate=None, balance_due=1800, rate_per_cuft=1.0), 1800),
    (dict(total_rate=None, balance_due=None, rate_per_cuft=1.0), 2400),
])
async def test_revenue_sources(db_session, marketplace, load_factory, geo, context, rates, expected_revenue):
    await add_loads(db_session, [stranger_load(marketplace, load_factory, **rates)])
    
    suggestion, = await find_matching_loads(db_session, geo, context)
    
    assert suggestion.revenue_estimate == expected_revenue


async def test_ranking_and_limit(db_session, marketplace, load_factory, geo, context):
    loads = [partner_load(marketplace, load_factory, load_number=f"P-{i}") for i in range(12)]
    loads += [stranger_load(marketplace, load_factory, load_number=f"S-{i}") for i in range(13)]
    await add_loads(db_session, loads)
    
    suggestions = await find_matching_loads(db_session, geo, context)
    
    scores = [s.match_score for s in suggestions]
    assert len(suggestions) == 20
    assert scores == sorted(scores, reverse=True)
    assert scores[:12] == [95] * 12
    # ties keep candidate order
    partner_ids = [s.load_id for s in suggestions[:12]]
    assert partner_ids == sorted(partner_ids)


async def test_results_respect_preferences(db_session, marketplace, load_factory, geo, context):
    await add_loads(db_session, [
        stranger_load(marketplace, load_factory, cubic_feet=cuft, total_rate=rate)
        for cuft in (1000, 1800, 2400, 3100)
        for rate in (600, 900, 1500, 4000)
    ])
    preferences = MatchingPreferences(min_match_score=0, min_capacity_utilization=40, max_capacity_utilization=95)
    
    suggestions = await find_matching_loads(db_session, geo, context, preferences)
    
    assert suggestions
    for s in suggestions:
        assert s.cubic_feet <= context.remaining_capacity_cuft
        assert 40 <= s.capacity_fit_percent <= 95
        assert s.profit_per_mile >= preferences.min_profit_per_mile
        assert s.distance_to_pickup_miles <= preferences.max_deadhead_miles
        assert 5 <= s.match_score <= 100


async def test_matching_is_deterministic(db_session, marketplace, load_factory, geo, context):
    await add_loads(db_session, [
        partner_load(marketplace, load_factory, cubic_feet=2000),
        stranger_load(marketplace, load_factory, cubic_feet=2600, total_rate=1500),
        stranger_load(marketplace, load_factory, delivery_city="Oklahoma City", delivery_state="OK",
                      delivery_zip="73102"),
    ])
    
    first = await find_matching_loads(db_session, geo, context)
    second = await find_matching_loads(db_session, geo, context)
    
    assert [s.model_dump() for s in first] == [s.model_dump() for s in second]


async def test_ungeocodable_trip_destination(db_session, marketplace, load_factory, geo):
    attached = marketplace["attached_load"]
    attached.delivery_city = "Atlantis"
    attached.delivery_state = "ZZ"
    attached.delivery_zip = None
    await add_loads(db_session, [stranger_load(marketplace, load_factory)])
    
    context = await build_matching_context(db_session, marketplace["trip"].id, marketplace["owner"].id)
    
    assert await find_matching_loads(db_session, geo, context) == []


async def test_trip_without_loads_has_nothing_to_match(db_session, marketplace, load_factory, geo):
    empty_trip = Trip(owner_id=marketplace["owner"].id, driver_id=marketplace["driver"].id)
    db_session.add(empty_trip)
    await add_loads(db_session, [stranger_load(marketplace, load_factory)])
    
    context = await build_matching_context(db_session, empty_trip.id, marketplace["owner"].id)
    
    assert context.remaining_capacity_cuft == 4200
    assert await find_matching_loads(db_session, geo, context) == []


async def test_candidate_query_failure_returns_nothing(db_session, marketplace, geo, context, mocker):
    mocker.patch.object(engine, "fetch_candidate_loads", side_effect=SQLAlchemyError("timeout"))
    
    assert await find_matching_loads(db_session, geo, context) == []


# --- persistence ---------------------------------------------------------------

async def count_suggestions(db_session):
    result = await db_session.execute(select(func.count(LoadSuggestion.id)))
    return result.scalar()


async def test_save_suggestions(db_session, marketplace, load_factory, geo, context):
    await add_loads(db_session, [
        partner_load(marketplace, load_factory),
        stranger_load(marketplace, load_factory),
    ])
    suggestions = await find_matching_loads(db_session, geo, context)
    
    result = await save_suggestions(
        db_session, context.trip_id, context.company_id, context.driver_id, context.owner_id, suggestions
    )
    
    assert result.success
    assert result.count == 2
    rows = (await db_session.execute(
        select(LoadSuggestion).order_by(LoadSuggestion.match_score.desc())
    )).scalars().all()
    assert [row.load_id for row in rows] == [s.load_id for s in suggestions]
    row = rows[0]
    assert row.status == SuggestionStatus.PENDING
    assert row.suggestion_type == SuggestionType.PARTNER_LOAD
    assert row.score_breakdown["partner_score"] == 10
    assert row.company_id == marketplace["carrier"].id
    expires_at = row.expires_at.replace(tzinfo=None)
    assert timedelta(hours=23, minutes=59) < expires_at - datetime.utcnow() <= timedelta(hours=24)


async def test_save_overwrites_previous_suggestion(db_session, marketplace, load_factory, geo, context):
    load, = await add_loads(db_session, [stranger_load(marketplace, load_factory)])
    first = await find_matching_loads(db_session, geo, context)
    await save_suggestions(db_session, context.trip_id, context.company_id, context.driver_id, context.owner_id, first)
    
    row = (await db_session.execute(select(LoadSuggestion))).scalar_one()
    row.status = SuggestionStatus.DISMISSED
    await db_session.commit()
    
    load.total_rate = 3000
    await db_session.commit()
    second = await find_matching_loads(db_session, geo, context)
    result = await save_suggestions(
        db_session, context.trip_id, context.company_id, context.driver_id, context.owner_id, second
    )
    
    assert result.success
    assert await count_suggestions(db_session) == 1
    await db_session.refresh(row)
    assert row.revenue_estimate == 3000
    assert row.status == SuggestionStatus.PENDING


async def test_save_nothing(db_session, context):
    result = await save_suggestions(db_session, context.trip_id, None, None, context.owner_id, [])
    
    assert result.success
    assert result.count == 0
    assert await count_suggestions(db_session) == 0


async def test_save_failure_is_reported(db_session, marketplace, load_factory, geo, context, mocker):
    await add_loads(db_session, [stranger_load(marketplace, load_factory)])
    suggestions = await find_matching_loads(db_session, geo, context)
    mocker.patch.object(db_session, "execute", side_effect=SQLAlchemyError("disk full"))
    rollback = mocker.spy(db_session, "rollback")
    
    result = await save_suggestions(
        db_session, context.trip_id, context.company_id, context.driver_id, context.owner_id, suggestions
    )
    
    assert not result.success
    assert result.count == 0
    assert "disk full" in result.error
    rollback.assert_called_once()


async def test_run_matching_uses_company_settings(db_session, marketplace, load_factory, geo):
    db_session.add(CompanyMatchingSettings(company_id=marketplace["carrier"].id, min_match_score=90))
    await add_loads(db_session, [
        partner_load(marketplace, load_factory),
        stranger_load(marketplace, load_factory),
    ])
    
    run = await run_matching(db_session, geo, marketplace["trip"].id, marketplace["owner"].id)
    
    assert [s.match_score for s in run.suggestions] == [95]
    assert run.save_result.count == 1


async def test_run_matching_overrides_beat_company_settings(db_session, marketplace, load_factory, geo):
    db_session.add(CompanyMatchingSettings(company_id=marketplace["carrier"].id, min_match_score=90))
    await add_loads(db_session, [
        partner_load(marketplace, load_factory),
        stranger_load(marketplace, load_factory),
    ])
    
    run = await run_matching(
        db_session, geo, marketplace["trip"].id, marketplace["owner"].id, {"min_match_score": 50}
    )
    
    assert [s.match_score for s in run.suggestions] == [95, 85]


# --- thresholds use unrounded values ---------------------------------------------

async def test_deadhead_just_over_limit_is_rejected(geo, context, load_factory):
    # Dallas -> Fort Worth is about 31.05 mi, which rounds to 31.0
    load = load_factory(id=1, owner_id=2)
    
    result = await score_load_for_trip(
        geo, load, context, MatchingPreferences(max_deadhead_miles=31.0, min_match_score=0), DALLAS, set()
    )
    
    assert calculate_distance(DALLAS, FORT_WORTH) > 31.0
    assert result is None


async def test_deadhead_just_over_step_scores_lower(geo, context, load_factory):
    miles_per_degree = EARTH_RADIUS_MILES * math.pi / 180
    delivery = Coordinates(lat=FORT_WORTH.lat + 25.04 / miles_per_degree, lng=FORT_WORTH.lng)
    load = load_factory(id=1, owner_id=2)
    
    result = await score_load_for_trip(geo, load, context, MatchingPreferences(), delivery, set())
    
    assert result.distance_to_pickup_miles == 25.0
    assert result.score_breakdown.proximity_score == 20


async def test_utilization_just_over_limit_is_rejected(geo, context, load_factory):
    context.remaining_capacity_cuft = 2400 / 0.9004
    load = load_factory(id=1, owner_id=2, cubic_feet=2400)
    
    rejected = await score_load_for_trip(
        geo, load, context, MatchingPreferences(max_capacity_utilization=90), DALLAS, set()
    )
    accepted = await score_load_for_trip(geo, load, context, MatchingPreferences(), DALLAS, set())
    
    assert rejected is None
    assert accepted.capacity_fit_percent == 90.0
    assert accepted.score_breakdown.capacity_score == 15


async def test_profit_just_under_step_scores_lower(geo, context, load_factory):
    context.driver_pay_config = PerMilePay(rate_per_mile=0)
    total_miles = calculate_distance(DALLAS, FORT_WORTH) + calculate_distance(FORT_WORTH, HOUSTON)
    fuel_cost = round(total_miles * 0.50, 2)
    load = load_factory(id=1, owner_id=2, total_rate=fuel_cost + 2.49996 * total_miles)
    
    result = await score_load_for_trip(geo, load, context, MatchingPreferences(), DALLAS, set())
    floor = await score_load_for_trip(
        geo, load, context, MatchingPreferences(min_profit_per_mile=2.5), DALLAS, set()
    )
    
    assert result.profit_per_mile == 2.5
    assert result.score_breakdown.profit_score == 20
    assert floor is None
