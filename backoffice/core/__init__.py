# ==============================================================================
# CORE PACKAGE INITIALIZATION
# ==============================================================================
# Core utilities: Settings, Exceptions
# ==============================================================================

"""
Core Module
===========

- settings: Environment configuration management
- exceptions: Error taxonomy mapped to HTTP status codes
"""

from backoffice.core.settings import settings, get_settings, Environment
from backoffice.core.exceptions import (
    AppException,
    ConfigurationError,
    DataSourceConnectionError,
    AdapterError,
    RetryExhaustedError,
    RecordValidationError,
    RelationshipValidationError,
    CascadeError,
    NotFoundError,
    BadRequestError,
)

__all__ = [
    "settings",
    "get_settings",
    "Environment",
    "AppException",
    "ConfigurationError",
    "DataSourceConnectionError",
    "AdapterError",
    "RetryExhaustedError",
    "RecordValidationError",
    "RelationshipValidationError",
    "CascadeError",
    "NotFoundError",
    "BadRequestError",
]
