# ==============================================================================
# FORMAT CHECKS - Pure Predicates Used by Validation Rules
# ==============================================================================

from __future__ import annotations

import ipaddress
import json
import re
import uuid
from datetime import date, datetime, timezone
from typing import Any, Optional

EMAIL_RE = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+@[a-zA-Z0-9-]+(?:\.[a-zA-Z0-9-]+)*$"
)
URL_RE = re.compile(r"^https?://[a-zA-Z0-9\-._~:/?#\[\]@!$&'()*+,;=%]+$")
PHONE_RE = re.compile(r"^\+?[1-9]\d{1,14}$")
MAC_RE = re.compile(r"^([0-9A-Fa-f]{2}[:-]){5}([0-9A-Fa-f]{2})$")
ISBN_RE = re.compile(r"^(?:ISBN(?:-1[03])?:?\s*)?(?:[0-9]{9}[0-9X]|(?:97[89])?[0-9]{10})$")
IBAN_RE = re.compile(r"^[A-Z]{2}[0-9]{2}[A-Z0-9]{1,30}$")
SSN_RE = re.compile(r"^\d{3}-\d{2}-\d{4}$")
BASE64_RE = re.compile(r"^[A-Za-z0-9+/]*={0,2}$")
HEX_RE = re.compile(r"^[0-9a-fA-F]+$")

POSTAL_CODE_RES = {
    "US": re.compile(r"^\d{5}(-\d{4})?$"),
    "UK": re.compile(r"^[A-Z]{1,2}\d{1,2}[A-Z]?\s?\d[A-Z]{2}$"),
    "GB": re.compile(r"^[A-Z]{1,2}\d{1,2}[A-Z]?\s?\d[A-Z]{2}$"),
    "CA": re.compile(r"^[A-Z]\d[A-Z]\s?\d[A-Z]\d$"),
}


def luhn(value: str) -> bool:
    """
    Luhn (mod 10) checksum over the digits of ``value``.

    Non-digit characters are ignored; fewer than two digits is invalid.
    """
    digits = [int(c) for c in value if c in "0123456789"]
    if len(digits) < 2:
        return False

    total = 0
    for i, digit in enumerate(reversed(digits)):
        if i % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return total % 10 == 0


def is_email(value: str) -> bool:
    return bool(EMAIL_RE.match(value))


def is_url(value: str) -> bool:
    return bool(URL_RE.match(value))


def is_phone(value: str) -> bool:
    """E.164: optional plus, no leading zero, at most 15 digits."""
    return bool(PHONE_RE.match(value))


def is_ipv4(value: str) -> bool:
    try:
        ipaddress.IPv4Address(value)
        return True
    except ValueError:
        return False


def is_ipv6(value: str) -> bool:
    try:
        ipaddress.IPv6Address(value)
        return True
    except ValueError:
        return False


def is_uuid(value: str) -> bool:
    try:
        uuid.UUID(value)
        return True
    except ValueError:
        return False


def is_mac_address(value: str) -> bool:
    return bool(MAC_RE.match(value))


def is_isbn(value: str) -> bool:
    return bool(ISBN_RE.match(value.replace("-", "").replace(" ", "")))


def is_iban(value: str) -> bool:
    return bool(IBAN_RE.match(value.replace(" ", "").upper()))


def is_ssn(value: str) -> bool:
    return bool(SSN_RE.match(value))


def is_postal_code(value: str, country_code: str) -> bool:
    """Countries without a known pattern always pass."""
    pattern = POSTAL_CODE_RES.get(country_code.upper())
    if pattern is None:
        return True
    return bool(pattern.match(value.upper()))


def is_base64(value: str) -> bool:
    return bool(BASE64_RE.match(value))


def is_json(value: str) -> bool:
    try:
        json.loads(value)
        return True
    except ValueError:
        return False


def is_hex(value: str) -> bool:
    return bool(HEX_RE.match(value))


def is_alphanumeric(value: str) -> bool:
    return all(c.isalnum() for c in value)


def password_problems(
    value: str,
    min_length: int,
    require_uppercase: bool,
    require_lowercase: bool,
    require_number: bool,
    require_special: bool,
) -> Optional[str]:
    """
    Describe the first unmet password requirement.

    Any character that is neither a letter nor a digit counts as special.

    Returns:
        Error message, or None when every requirement is met
    """
    if len(value) < min_length:
        return f"Password must be at least {min_length} characters"
    if require_uppercase and not any(c.isupper() for c in value):
        return "Password must contain at least one uppercase letter"
    if require_lowercase and not any(c.islower() for c in value):
        return "Password must contain at least one lowercase letter"
    if require_number and not any(c.isdigit() for c in value):
        return "Password must contain at least one number"
    if require_special and all(c.isalnum() for c in value):
        return "Password must contain at least one special character"
    return None


# ==============================================================================
# DATES
# ==============================================================================

def parse_datetime(value: Any) -> Optional[datetime]:
    """
    Parse an RFC 3339 timestamp or a plain ``YYYY-MM-DD`` date.

    Naive values are taken as UTC. Returns None when unparseable.
    """
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        try:
            parsed = datetime.combine(date.fromisoformat(text), datetime.min.time())
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
