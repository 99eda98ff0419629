# ==============================================================================
# BACKOFFICE PACKAGE INITIALIZATION
# ==============================================================================
# Configuration-driven backoffice engine
# Supports: SQL databases, MongoDB, Redis, Elasticsearch, REST, GraphQL,
#           Supabase, S3, Kafka, WebSocket
# ==============================================================================

"""
Backoffice Data Access & Integrity Engine
=========================================

Serves administrative CRUD over heterogeneous backends from declarative
YAML schemas.

Features:
---------
- One adapter contract over ten backend kinds, pooled per process
- Referential integrity: foreign keys, many-to-many members, cascade deletes
- Declarative field validation with conditional rules
- Daily JSON-lines audit trail

Usage:
------
    from backoffice.main import app

    # Run with uvicorn
    uvicorn backoffice.main:app --reload
"""

__version__ = "1.0.0"
__all__ = ["__version__"]
