# ==============================================================================
# RECORD COERCION - Driver Values to JSON-Compatible Records
# ==============================================================================

from __future__ import annotations

import base64
import logging
import math
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional
from uuid import UUID

logger = logging.getLogger(__name__)

# A record is an untyped field-name -> JSON value mapping.
Record = Dict[str, Any]

_SCALARS = (str, bool, int)


def to_record_value(value: Any) -> Any:
    """
    Best-effort conversion of a driver value into a JSON-compatible value.

    Never raises: a value that fails to convert becomes ``None``, and an
    unrecognised type falls back to its string form with a warning.
    """
    try:
        return _convert(value)
    except Exception as e:
        logger.warning(f"Could not coerce value of type {type(value).__name__}: {e}")
        return None


def _convert(value: Any) -> Any:
    if value is None or isinstance(value, _SCALARS):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, Decimal):
        if not value.is_finite():
            return None
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, timedelta):
        return value.total_seconds()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Enum):
        return _convert(value.value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        raw = bytes(value)
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError:
            return base64.b64encode(raw).decode("ascii")
    if isinstance(value, Mapping):
        return {str(k): to_record_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_record_value(v) for v in value]

    # ObjectId, Decimal128, Timestamp and friends
    logger.warning(f"Unrecognised value type {type(value).__name__}; using string form")
    return str(value)


def to_record(row: Mapping[str, Any]) -> Record:
    """Coerce every column of a driver row."""
    return {str(key): to_record_value(value) for key, value in row.items()}


def to_records(rows: Iterable[Mapping[str, Any]]) -> List[Record]:
    return [to_record(row) for row in rows]


def record_id(record: Mapping[str, Any]) -> Optional[str]:
    """
    Identifier of a record as a string.

    Looks at ``id`` first, then ``_id`` (document stores).
    """
    for key in ("id", "_id"):
        value = record.get(key)
        if value is None or isinstance(value, (dict, list)):
            continue
        return str(value)
    return None


def matches_params(record: Mapping[str, Any], params: Optional[Mapping[str, Any]]) -> bool:
    """
    Equality filter used by key-value style backends.

    A param matches a top-level field, or a field of the decoded ``value``
    or ``content`` payload.
    """
    if not params:
        return True
    nested = [record.get(k) for k in ("value", "content") if isinstance(record.get(k), dict)]
    for key, expected in params.items():
        if key in record and record[key] == expected:
            continue
        if any(payload.get(key) == expected for payload in nested):
            continue
        return False
    return True
