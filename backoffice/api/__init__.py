# ==============================================================================
# API PACKAGE INITIALIZATION
# ==============================================================================

"""
API Module
==========

FastAPI routers and endpoint definitions:
- Dependencies: loaded schema, adapter registry, action service
- Routers: config, backoffices, section actions
"""

from backoffice.api.router import api_router

__all__ = ["api_router"]
