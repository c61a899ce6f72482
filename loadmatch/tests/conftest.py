"""
Centralized Test Configuration.
"""

from datetime import date, timedelta

import httpx
import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import Pool, StaticPool

from loadmatch.app.main import app
from loadmatch.app.db.session import get_db, Base
from loadmatch.app.core.dependencies import get_geo_resolver
from loadmatch.app.core.jwt import create_access_token
from loadmatch.app.core.redis_client import get_redis
from loadmatch.app.core.reliability import CircuitBreaker
import loadmatch.app.core.redis_client as redis_client_module
from loadmatch.app.models.company import Company, CompanyPartnership
from loadmatch.app.models.fleet import Driver, Trailer
from loadmatch.app.models.load import Load
from loadmatch.app.models.matching_enums import PartnershipStatus, PostingStatus
from loadmatch.app.models.trip import Trip, TripLoad
from loadmatch.app.models.user import User
from loadmatch.app.services.cache import GeocodeCache
from loadmatch.app.services.geocoding import GeoResolver

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)

GEOCODER_BASE_URL = "https://geo.test"

# ZIP table served by the fake geocoding provider (Zippopotam.us format)
ZIP_TABLE = {
    "75201": ("Dallas", "TX", 32.7767, -96.7970),
    "76102": ("Fort Worth", "TX", 32.7555, -97.3308),
    "77002": ("Houston", "TX", 29.7604, -95.3698),
    "73102": ("Oklahoma City", "OK", 35.4676, -97.5164),
    "98101": ("Seattle", "WA", 47.6062, -122.3321),
}


def zippopotam_handler(request: httpx.Request) -> httpx.Response:
    zip_code = request.url.path.rsplit("/", 1)[-1]
    if zip_code not in ZIP_TABLE:
        return httpx.Response(404, json={})
    city, state, lat, lng = ZIP_TABLE[zip_code]
    return httpx.Response(200, json={
        "post code": zip_code,
        "country": "United States",
        "places": [{
            "place name": city,
            "state abbreviation": state,
            "latitude": str(lat),
            "longitude": str(lng),
        }],
    })


class GeocoderStub:
    """Fake geocoding provider that records every ZIP it is asked for."""
    
    def __init__(self):
        self.requests = []
    
    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request.url.path.rsplit("/", 1)[-1])
        return zippopotam_handler(request)


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self._closed = False
    
    async def ping(self):
        if self._closed:
            return False
        return True
    
    async def get(self, key):
        if self._closed:
            return None
        return self.store.get(key)
        
    async def set(self, key, value, ex=None):
        if self._closed:
            return False
        self.store[key] = value
        return True
    
    async def delete(self, key):
        if self._closed:
            return 0
        if key in self.store:
            del self.store[key]
            return 1
        return 0
        
    async def flushdb(self):
        if not self._closed:
            self.store = {}


@pytest.fixture(scope="session")
def redis_client_session():
    return MockRedis()


@pytest.fixture
def geocoder_stub():
    return GeocoderStub()


@pytest.fixture
async def geo(geocoder_stub, redis_client_session):
    """GeoResolver wired to the fake provider and the mock Redis."""
    async with httpx.AsyncClient(transport=httpx.MockTransport(geocoder_stub)) as http_client:
        yield GeoResolver(
            client=http_client,
            cache=GeocodeCache(redis_client_session),
            breaker=CircuitBreaker("geocoding-test"),
            base_url=GEOCODER_BASE_URL,
        )


@pytest.fixture(autouse=True)
def apply_overrides(redis_client_session, geocoder_stub):
    """Point the app at the test database, mock Redis and fake geocoder."""
    original_client = redis_client_module.redis_client
    redis_client_module.redis_client = redis_client_session
    
    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    async def override_get_redis():
        return redis_client_session

    async def override_get_geo_resolver():
        async with httpx.AsyncClient(transport=httpx.MockTransport(geocoder_stub)) as http_client:
            yield GeoResolver(
                client=http_client,
                cache=GeocodeCache(redis_client_session),
                breaker=CircuitBreaker("geocoding-test"),
                base_url=GEOCODER_BASE_URL,
            )

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    app.dependency_overrides[get_geo_resolver] = override_get_geo_resolver
    yield
    
    app.dependency_overrides = {}
    redis_client_module.redis_client = original_client


@pytest.fixture(autouse=True)
async def setup_database(redis_client_session):
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    
    await redis_client_session.flushdb()
    
    yield
    
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# Shared session for fixture data creation
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


def bearer_headers(user: User) -> dict:
    token = create_access_token(data={"sub": user.username, "user_id": user.id})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers():
    """Build bearer headers for a user."""
    return bearer_headers


@pytest.fixture
def load_factory():
    """Build (unsaved) marketplace loads with sensible defaults."""
    return make_load


def make_load(**overrides) -> Load:
    """A posted marketplace load picked up in Fort Worth, delivered to Houston."""
    values = dict(
        load_number="LD-1",
        pickup_city="Fort Worth",
        pickup_state="TX",
        pickup_zip="76102",
        pickup_date=date.today() + timedelta(days=1),
        delivery_city="Houston",
        delivery_state="TX",
        delivery_zip="77002",
        cubic_feet=2400,
        total_rate=2000,
        posting_status=PostingStatus.POSTED,
        is_marketplace_visible=True,
    )
    values.update(overrides)
    return Load(**values)


@pytest.fixture
async def marketplace(db_session):
    """
    Two carrier companies that are active partners, plus a third stranger.
    
    The carrier owns a driver (0.60/mile), a 4200 cu ft trailer and a trip
    whose only load (1000 cu ft) delivers to Dallas. Return preference is TX.
    """
    carrier = Company(name="Lone Star Movers")
    partner = Company(name="Partner Van Lines")
    stranger = Company(name="Elsewhere Freight")
    db_session.add_all([carrier, partner, stranger])
    await db_session.flush()
    
    db_session.add(CompanyPartnership(
        company_a_id=carrier.id, company_b_id=partner.id, status=PartnershipStatus.ACTIVE
    ))
    
    owner = User(email="owner@carrier.test", username="carrier_owner", company_id=carrier.id)
    partner_user = User(email="dispatch@partner.test", username="partner_dispatch", company_id=partner.id)
    stranger_user = User(email="ops@elsewhere.test", username="elsewhere_ops", company_id=stranger.id)
    db_session.add_all([owner, partner_user, stranger_user])
    await db_session.flush()
    
    driver = Driver(owner_id=owner.id, full_name="Sam Driver", pay_mode="per_mile", rate_per_mile=0.60)
    trailer = Trailer(owner_id=owner.id, unit_number="TR-53", cubic_capacity=4200)
    db_session.add_all([driver, trailer])
    await db_session.flush()
    
    trip = Trip(
        owner_id=owner.id,
        driver_id=driver.id,
        trailer_id=trailer.id,
        origin_city="Oklahoma City",
        origin_state="OK",
        origin_zip="73102",
        return_route_preference=["TX"],
    )
    db_session.add(trip)
    await db_session.flush()
    
    attached = make_load(
        load_number="OWN-1",
        owner_id=owner.id,
        company_id=carrier.id,
        pickup_city="Oklahoma City",
        pickup_state="OK",
        pickup_zip="73102",
        delivery_city="Dallas",
        delivery_state="TX",
        delivery_zip="75201",
        cubic_feet=1000,
        posting_status=PostingStatus.ASSIGNED,
        assigned_carrier_id=carrier.id,
    )
    db_session.add(attached)
    await db_session.flush()
    db_session.add(TripLoad(trip_id=trip.id, load_id=attached.id, sequence_index=0))
    await db_session.commit()
    
    return {
        "carrier": carrier,
        "partner": partner,
        "stranger": stranger,
        "owner": owner,
        "partner_user": partner_user,
        "stranger_user": stranger_user,
        "driver": driver,
        "trailer": trailer,
        "trip": trip,
        "attached_load": attached,
    }
