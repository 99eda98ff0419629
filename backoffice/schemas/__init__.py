# ==============================================================================
# SCHEMAS PACKAGE INITIALIZATION
# ==============================================================================

"""
Pydantic Schemas
================

Response envelopes for API endpoints.
"""

from backoffice.schemas.base import (
    BaseSchema,
    APIResponse,
    HealthResponse,
    BackofficeSummary,
)

__all__ = [
    "BaseSchema",
    "APIResponse",
    "HealthResponse",
    "BackofficeSummary",
]
