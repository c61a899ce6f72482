"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from loadmatch.app.api.v1.endpoints import matching, matching_settings

router = APIRouter()

# Matching runs, suggestions, route search, trip visibility
router.include_router(matching.router)

# Per-company matching preferences
router.include_router(matching_settings.router)
