# ==============================================================================
# CONFIG PACKAGE INITIALIZATION
# ==============================================================================
# Backoffice schema models and the YAML loader
# ==============================================================================

"""
Schema Configuration
====================

- models: Frozen pydantic models for backoffices, sections, actions,
  fields, validation rules, relationships and data sources
- loader: YAML loading and cross-reference checks
"""

from backoffice.config.models import (
    AppConfig,
    BackofficeConfig,
    SectionConfig,
    FieldConfig,
    RelationshipConfig,
    DataSourceConfig,
)
from backoffice.config.loader import (
    load_app_config,
    load_backoffices,
    parse_backoffice,
)

__all__ = [
    "AppConfig",
    "BackofficeConfig",
    "SectionConfig",
    "FieldConfig",
    "RelationshipConfig",
    "DataSourceConfig",
    "load_app_config",
    "load_backoffices",
    "parse_backoffice",
]
