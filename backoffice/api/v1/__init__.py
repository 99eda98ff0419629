# ==============================================================================
# API V1 ENDPOINTS PACKAGE
# ==============================================================================

"""
API V1 Endpoints
================

Schema discovery and action execution endpoints.
"""

from backoffice.api.v1.backoffices import router as backoffices_router

__all__ = [
    "backoffices_router",
]
