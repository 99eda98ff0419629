# ==============================================================================
# SERVICES PACKAGE INITIALIZATION
# ==============================================================================

"""
Service Layer
=============

- ActionService: Query, mutation and delete orchestration per backoffice
"""

from backoffice.services.action_service import ActionService

__all__ = ["ActionService"]
