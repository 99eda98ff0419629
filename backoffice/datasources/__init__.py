# ==============================================================================
# DATA SOURCES PACKAGE INITIALIZATION
# ==============================================================================
# Uniform record-oriented access to heterogeneous backends
# ==============================================================================

"""
Data Sources Module
===================

Key Components:
- Adapters: Backend-specific implementations of one contract
- Factory: Configuration variant to adapter
- Registry: Adapters pooled per process, borrowed per request
- Coercion: Driver values to JSON-compatible records
"""

from backoffice.datasources.adapters.base_adapter import BaseDataSourceAdapter, Pagination
from backoffice.datasources.coercion import Record
from backoffice.datasources.factory import DataSourceFactory
from backoffice.datasources.registry import DataSourceRegistry

__all__ = [
    "BaseDataSourceAdapter",
    "Pagination",
    "Record",
    "DataSourceFactory",
    "DataSourceRegistry",
]
