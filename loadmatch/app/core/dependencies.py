"""
Request-scoped dependencies for FastAPI.

Resolves the calling user (and their company) from the bearer token and
wires the geocoder used by the matching endpoints.
"""

from typing import AsyncIterator
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from loadmatch.app.core.exceptions import AuthenticationError, InsufficientPermissionsError
from loadmatch.app.core.jwt import decode_access_token
from loadmatch.app.core.redis_client import get_redis
from loadmatch.app.db.session import get_db
from loadmatch.app.models.user import User
from loadmatch.app.services.cache import GeocodeCache
from loadmatch.app.services.geocoding import GeoResolver, get_http_client

# HTTP Bearer security scheme
security = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> User:
    """
    Authenticate the caller.
    
    Checks:
    1. Token signature and expiry
    2. Token carries a user_id
    3. User still exists and is active
    
    Raises:
        AuthenticationError: 401 if the token or its user is not valid
        InsufficientPermissionsError: 403 if the account is inactive
    """
    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise AuthenticationError("Could not validate credentials")
    
    user_id = payload.get("user_id")
    if not user_id:
        raise AuthenticationError("Invalid token payload")
    
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    
    if not user:
        raise AuthenticationError("User not found")
    
    if not user.is_active:
        raise InsufficientPermissionsError("User account is inactive")
    
    return user


async def get_geo_resolver(redis=Depends(get_redis)) -> AsyncIterator[GeoResolver]:
    """
    One GeoResolver per request.
    
    The resolver memoizes lookups for the lifetime of the request; the
    Redis-backed cache and the HTTP client are shared across requests.
    """
    yield GeoResolver(client=get_http_client(), cache=GeocodeCache(redis))
