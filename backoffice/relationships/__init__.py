# ==============================================================================
# RELATIONSHIPS PACKAGE INITIALIZATION
# ==============================================================================

"""
Relationship Integrity Module
=============================

Foreign key and many-to-many existence checks, cascade delete planning
and execution.
"""

from backoffice.relationships.engine import (
    CascadeOperation,
    CascadeOperationType,
    RelationshipError,
    execute_cascade_operations,
    handle_cascade_delete,
    validate_foreign_keys,
    validate_many_to_many,
)

__all__ = [
    "CascadeOperation",
    "CascadeOperationType",
    "RelationshipError",
    "execute_cascade_operations",
    "handle_cascade_delete",
    "validate_foreign_keys",
    "validate_many_to_many",
]
