# ==============================================================================
# MAIN API ROUTER - Route Aggregation
# ==============================================================================
# Combines all API version routers
# ==============================================================================

from __future__ import annotations

from fastapi import APIRouter

from backoffice.api.v1 import backoffices_router
from backoffice.core.settings import settings

api_router = APIRouter()

api_router.include_router(backoffices_router, prefix=settings.API_PREFIX)
