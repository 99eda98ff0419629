# ==============================================================================
# AUDIT PACKAGE INITIALIZATION
# ==============================================================================

"""
Audit Trail
===========

Append-only JSON lines, one file per day.
"""

from backoffice.audit.logger import (
    AuditEntry,
    AuditLogger,
    AuditOperation,
    FieldChange,
    compute_changes,
    should_audit,
)

__all__ = [
    "AuditEntry",
    "AuditLogger",
    "AuditOperation",
    "FieldChange",
    "compute_changes",
    "should_audit",
]
