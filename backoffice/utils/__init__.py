# ==============================================================================
# UTILS PACKAGE INITIALIZATION
# ==============================================================================

"""
Utilities
=========

- logger: Root logging setup (text or JSON lines)
"""

from backoffice.utils.logger import JsonFormatter, setup_logging

__all__ = ["JsonFormatter", "setup_logging"]
