"""
Geocoding and distance service.

Forward geocoding is ZIP-first against Zippopotam.us with a fallback to
approximate state centers. Distances are great-circle miles.

A GeoResolver lives for one request and memoizes every lookup it makes,
including lookups still in flight, so concurrent candidates in the same
city share one call. ZIP results are also cached across requests in Redis.
"""

import asyncio
import logging
import math
import re
from typing import Dict, List, Optional

import httpx

from loadmatch.app.core.config import settings
from loadmatch.app.core.reliability import CircuitBreaker, CircuitOpenError, geocoding_circuit_breaker
from loadmatch.app.domain.matching.types import Coordinates, GeocodingResult

logger = logging.getLogger(__name__)

EARTH_RADIUS_MILES = 3958.8

ZIP_PATTERN = re.compile(r"^\d{5}$")

# Approximate state centers, used when a ZIP is missing or unknown
STATE_CENTERS: Dict[str, tuple] = {
    "AL": (32.806671, -86.791130),
    "AK": (61.370716, -152.404419),
    "AZ": (33.729759, -111.431221),
    "AR": (34.969704, -92.373123),
    "CA": (36.116203, -119.681564),
    "CO": (39.059811, -105.311104),
    "CT": (41.597782, -72.755371),
    "DE": (39.318523, -75.507141),
    "FL": (27.766279, -81.686783),
    "GA": (33.040619, -83.643074),
    "HI": (21.094318, -157.498337),
    "ID": (44.240459, -114.478828),
    "IL": (40.349457, -88.986137),
    "IN": (39.849426, -86.258278),
    "IA": (42.011539, -93.210526),
    "KS": (38.526600, -96.726486),
    "KY": (37.668140, -84.670067),
    "LA": (31.169546, -91.867805),
    "ME": (44.693947, -69.381927),
    "MD": (39.063946, -76.802101),
    "MA": (42.230171, -71.530106),
    "MI": (43.326618, -84.536095),
    "MN": (45.694454, -93.900192),
    "MS": (32.741646, -89.678696),
    "MO": (38.456085, -92.288368),
    "MT": (46.921925, -110.454353),
    "NE": (41.125370, -98.268082),
    "NV": (38.313515, -117.055374),
    "NH": (43.452492, -71.563896),
    "NJ": (40.298904, -74.521011),
    "NM": (34.840515, -106.248482),
    "NY": (42.165726, -74.948051),
    "NC": (35.630066, -79.806419),
    "ND": (47.528912, -99.784012),
    "OH": (40.388783, -82.764915),
    "OK": (35.565342, -96.928917),
    "OR": (44.572021, -122.070938),
    "PA": (40.590752, -77.209755),
    "RI": (41.680893, -71.511780),
    "SC": (33.856892, -80.945007),
    "SD": (44.299782, -99.438828),
    "TN": (35.747845, -86.692345),
    "TX": (31.054487, -97.563461),
    "UT": (40.150032, -111.862434),
    "VT": (44.045876, -72.710686),
    "VA": (37.769337, -78.169968),
    "WA": (47.400902, -121.490494),
    "WV": (38.491226, -80.954453),
    "WI": (44.268543, -89.616508),
    "WY": (42.755966, -107.302490),
    "DC": (38.897438, -77.026817),
}


def calculate_distance(point1: Coordinates, point2: Coordinates) -> float:
    """
    Great-circle distance between two points (haversine).
    
    Returns:
        Distance in miles
    """
    lat1 = math.radians(point1.lat)
    lat2 = math.radians(point2.lat)
    delta_lat = math.radians(point2.lat - point1.lat)
    delta_lng = math.radians(point2.lng - point1.lng)
    
    a = math.sin(delta_lat / 2)**2 + math.cos(lat1) * math.cos(lat2) * math.sin(delta_lng / 2)**2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    
    return EARTH_RADIUS_MILES * c


def calculate_route_distance(points: List[Coordinates]) -> float:
    """Total length of a multi-stop route, in miles."""
    if len(points) < 2:
        return 0.0
    return sum(calculate_distance(a, b) for a, b in zip(points, points[1:]))


def calculate_detour_distance(route_start: Coordinates, route_end: Coordinates, point: Coordinates) -> float:
    """
    Miles from a point to the closest point on the start->end segment.
    
    The projection is done on raw lat/lng, which is close enough at
    regional scale.
    """
    if calculate_distance(route_start, route_end) == 0:
        return calculate_distance(point, route_start)
    
    d_lat = route_end.lat - route_start.lat
    d_lng = route_end.lng - route_start.lng
    t = ((point.lat - route_start.lat) * d_lat + (point.lng - route_start.lng) * d_lng) / (d_lat**2 + d_lng**2)
    t = max(0.0, min(1.0, t))
    
    closest = Coordinates(lat=route_start.lat + t * d_lat, lng=route_start.lng + t * d_lng)
    return calculate_distance(point, closest)


def calculate_added_miles(route_start: Coordinates, route_end: Coordinates, detour_point: Coordinates) -> float:
    """Extra miles to go start -> detour_point -> end instead of start -> end."""
    direct = calculate_distance(route_start, route_end)
    via_detour = calculate_distance(route_start, detour_point) + calculate_distance(detour_point, route_end)
    return max(0.0, via_detour - direct)


def normalize_zip(postal_code: Optional[str]) -> Optional[str]:
    if not postal_code:
        return None
    return postal_code.strip()[:5]


def location_key(city: Optional[str], state: Optional[str], postal_code: Optional[str]) -> str:
    """Memo key for a location: ZIP5|STATE|city, normalized."""
    return "|".join([
        normalize_zip(postal_code) or "",
        (state or "").strip().upper(),
        (city or "").strip().lower(),
    ])


_http_client: Optional[httpx.AsyncClient] = None


def get_http_client() -> httpx.AsyncClient:
    """Shared HTTP client for geocoding calls."""
    global _http_client
    if _http_client is None:
        _http_client = httpx.AsyncClient(timeout=settings.geocoding_timeout_seconds)
    return _http_client


async def close_http_client() -> None:
    global _http_client
    if _http_client is not None:
        await _http_client.aclose()
        _http_client = None


class GeoResolver:
    """
    Request-scoped geocoder.
    
    Never raises for a bad address: failures come back as
    GeocodingResult(success=False).
    """
    
    def __init__(
        self,
        client: httpx.AsyncClient,
        cache=None,
        breaker: Optional[CircuitBreaker] = None,
        base_url: Optional[str] = None,
    ):
        self.client = client
        self.cache = cache
        self.breaker = breaker or geocoding_circuit_breaker
        self.base_url = (base_url or settings.geocoding_base_url).rstrip("/")
        self._memo: Dict[str, asyncio.Future] = {}

    distance = staticmethod(calculate_distance)
    added_miles = staticmethod(calculate_added_miles)

    async def geocode(
        self,
        city: Optional[str],
        state: Optional[str],
        postal_code: Optional[str],
    ) -> GeocodingResult:
        """
        Resolve a city/state/ZIP triple to coordinates.
        
        Tries the ZIP first; if that is missing or fails, falls back to
        the state center. Repeated calls for the same place reuse the
        first lookup.
        """
        key = location_key(city, state, postal_code)
        lookup = self._memo.get(key)
        if lookup is None:
            lookup = asyncio.ensure_future(self._resolve(city, state, postal_code))
            self._memo[key] = lookup
        return await asyncio.shield(lookup)

    async def _resolve(self, city, state, postal_code) -> GeocodingResult:
        if postal_code:
            zip_result = await self.geocode_zip(postal_code)
            if zip_result.success:
                return zip_result
        
        if state:
            center = STATE_CENTERS.get(state.strip().upper())
            if center:
                return GeocodingResult(
                    success=True,
                    coordinates=Coordinates(lat=center[0], lng=center[1], city=city or None, state=state),
                )
        
        return GeocodingResult(success=False, error="Unable to geocode location")

    async def geocode_zip(self, postal_code: str) -> GeocodingResult:
        """Look up a US ZIP code (cache first, then the provider)."""
        clean_zip = normalize_zip(postal_code)
        if not clean_zip or not ZIP_PATTERN.match(clean_zip):
            return GeocodingResult(success=False, error="Invalid zip code format")
        
        if self.cache is not None:
            cached = await self.cache.get(clean_zip)
            if cached:
                return GeocodingResult(success=True, coordinates=cached)
        
        try:
            response = await self.breaker.call(self._request_zip, clean_zip)
        except CircuitOpenError as exc:
            return GeocodingResult(success=False, error=str(exc))
        except httpx.HTTPError as exc:
            logger.warning("Geocoding request for %s failed: %s", clean_zip, exc)
            return GeocodingResult(success=False, error="Failed to geocode zip code")
        
        if response.status_code == 404:
            return GeocodingResult(success=False, error="Zip code not found")
        if response.status_code != 200:
            return GeocodingResult(success=False, error=f"API error: {response.status_code}")
        
        try:
            places = response.json().get("places") or []
            place = places[0] if places else None
            if place is None:
                return GeocodingResult(success=False, error="No location data found")
            coordinates = Coordinates(
                lat=float(place["latitude"]),
                lng=float(place["longitude"]),
                city=place.get("place name"),
                state=place.get("state abbreviation"),
            )
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("Unexpected geocoding payload for %s: %s", clean_zip, exc)
            return GeocodingResult(success=False, error="Malformed geocoding response")
        
        if self.cache is not None:
            await self.cache.set(clean_zip, coordinates)
        
        return GeocodingResult(success=True, coordinates=coordinates)

    async def _request_zip(self, zip_code: str) -> httpx.Response:
        response = await self.client.get(f"{self.base_url}/us/{zip_code}")
        if response.status_code >= 500:
            # Count provider outages against the breaker
            response.raise_for_status()
        return response
