# ==============================================================================
# VALIDATION PACKAGE INITIALIZATION
# ==============================================================================

"""
Validation Module
=================

- engine: Rule evaluation over untyped records
- checks: Pure format predicates (Luhn, email, IBAN ...)
"""

from backoffice.validation.engine import ValidationError, evaluate_condition, validate
from backoffice.validation.checks import luhn

__all__ = [
    "ValidationError",
    "evaluate_condition",
    "validate",
    "luhn",
]
