# ==============================================================================
# VALIDATION ENGINE - Field Rules Against Untyped Records
# ==============================================================================
# Evaluates each field's rule list against a submitted record. Pure: no I/O,
# no mutation of the record
# ==============================================================================

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from backoffice.config.models import (
    AlphaNumericRule,
    AsciiRule,
    Base64Rule,
    BetweenRule,
    ConditionOperator,
    CreditCardRule,
    CustomFunctionRule,
    DateRangeRule,
    DependsOnRule,
    EmailRule,
    FieldConfig,
    FileSizeRule,
    FileTypeRule,
    FutureRule,
    HexRule,
    IbanRule,
    IPv4Rule,
    IPv6Rule,
    IsbnRule,
    JsonRule,
    LuhnRule,
    MacAddressRule,
    MatchFieldRule,
    MaxAgeRule,
    MaxLengthRule,
    MaxRule,
    MinAgeRule,
    MinLengthRule,
    MinRule,
    NotEmptyRule,
    PastRule,
    PatternRule,
    PhoneRule,
    PostalCodeRule,
    RequiredRule,
    SsnRule,
    StrongPasswordRule,
    UniqueInRule,
    UrlRule,
    UuidRule,
    ValidationCondition,
)
from backoffice.datasources.coercion import Record
from backoffice.validation import checks

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidationError:
    """One failed rule on one field."""

    field: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"field": self.field, "message": self.message}


# ==============================================================================
# CONDITIONS
# ==============================================================================

def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _json_equal(a: Any, b: Any) -> bool:
    """Equality with JSON typing: booleans never equal numbers."""
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b
    if isinstance(a, list) and isinstance(b, list):
        return len(a) == len(b) and all(_json_equal(x, y) for x, y in zip(a, b))
    if isinstance(a, dict) and isinstance(b, dict):
        return a.keys() == b.keys() and all(_json_equal(a[k], b[k]) for k in a)
    return a == b


def evaluate_condition(condition: ValidationCondition, record: Record) -> bool:
    """
    Evaluate a rule's gate against the whole record.

    Ordering needs two numbers, containment two strings and membership a
    list operand. Any other combination, or a missing field, is false,
    except ``notequals`` where a missing field is simply not equal.
    """
    present = condition.field in record
    actual = record.get(condition.field)
    expected = condition.value
    op = condition.operator

    if op == ConditionOperator.EQUALS:
        return present and _json_equal(actual, expected)
    if op == ConditionOperator.NOT_EQUALS:
        return not (present and _json_equal(actual, expected))

    if not present:
        return False

    if op in (
        ConditionOperator.GREATER_THAN,
        ConditionOperator.LESS_THAN,
        ConditionOperator.GREATER_THAN_OR_EQUAL,
        ConditionOperator.LESS_THAN_OR_EQUAL,
    ):
        if not (_is_number(actual) and _is_number(expected)):
            return False
        if op == ConditionOperator.GREATER_THAN:
            return actual > expected
        if op == ConditionOperator.LESS_THAN:
            return actual < expected
        if op == ConditionOperator.GREATER_THAN_OR_EQUAL:
            return actual >= expected
        return actual <= expected

    if op in (ConditionOperator.CONTAINS, ConditionOperator.NOT_CONTAINS):
        if not (isinstance(actual, str) and isinstance(expected, str)):
            return False
        found = expected in actual
        return found if op == ConditionOperator.CONTAINS else not found

    if op in (ConditionOperator.IN, ConditionOperator.NOT_IN):
        if not isinstance(expected, list):
            return False
        found = any(_json_equal(actual, item) for item in expected)
        return found if op == ConditionOperator.IN else not found

    return False


# ==============================================================================
# VALUE HELPERS
# ==============================================================================

def _as_float(value: Any) -> Optional[float]:
    """Numbers and numeric strings as float; anything else is None."""
    if _is_number(value):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return None if math.isnan(number) else number


def _fmt(number: float) -> str:
    return str(int(number)) if float(number).is_integer() else str(number)


def _age_days(value: Any) -> Optional[int]:
    born = checks.parse_datetime(value)
    if born is None:
        return None
    return (checks.utc_now().date() - born.date()).days


# ==============================================================================
# RULE CHECKS
# ==============================================================================
# Each check returns the default error message, or None when the value passes

RuleCheck = Callable[[Any, Any, FieldConfig, Record], Optional[str]]


def _string_check(predicate: Callable[[str], bool], suffix: str) -> RuleCheck:
    def check(value: Any, rule: Any, field: FieldConfig, record: Record) -> Optional[str]:
        if isinstance(value, str) and not predicate(value):
            return f"{field.name} {suffix}"
        return None

    return check


def _required(value: Any, rule: RequiredRule, field: FieldConfig, record: Record) -> Optional[str]:
    if rule.value and value is None:
        return f"{field.name} is required"
    return None


def _min_length(value: Any, rule: MinLengthRule, field: FieldConfig, record: Record) -> Optional[str]:
    if isinstance(value, str) and len(value) < rule.value:
        return f"{field.name} must be at least {rule.value} characters"
    return None


def _max_length(value: Any, rule: MaxLengthRule, field: FieldConfig, record: Record) -> Optional[str]:
    if isinstance(value, str) and len(value) > rule.value:
        return f"{field.name} must be at most {rule.value} characters"
    return None


def _pattern(value: Any, rule: PatternRule, field: FieldConfig, record: Record) -> Optional[str]:
    if not isinstance(value, str):
        return None
    try:
        compiled = re.compile(rule.regex)
    except re.error as e:
        return f"Invalid regex pattern: {e}"
    if not compiled.search(value):
        return f"{field.name} does not match the required pattern"
    return None


def _min(value: Any, rule: MinRule, field: FieldConfig, record: Record) -> Optional[str]:
    number = _as_float(value)
    if number is not None and number < rule.value:
        return f"{field.name} must be at least {_fmt(rule.value)}"
    return None


def _max(value: Any, rule: MaxRule, field: FieldConfig, record: Record) -> Optional[str]:
    number = _as_float(value)
    if number is not None and number > rule.value:
        return f"{field.name} must be at most {_fmt(rule.value)}"
    return None


def _between(value: Any, rule: BetweenRule, field: FieldConfig, record: Record) -> Optional[str]:
    number = _as_float(value)
    if number is not None and (number < rule.min or number > rule.max):
        return f"{field.name} must be between {_fmt(rule.min)} and {_fmt(rule.max)}"
    return None


def _depends_on(value: Any, rule: DependsOnRule, field: FieldConfig, record: Record) -> Optional[str]:
    if rule.field in record and not _json_equal(record[rule.field], rule.expected_value):
        return f"{field.name} depends on {rule.field} having a specific value"
    return None


def _match_field(value: Any, rule: MatchFieldRule, field: FieldConfig, record: Record) -> Optional[str]:
    if rule.field in record and not _json_equal(value, record[rule.field]):
        return f"{field.name} must match {rule.field}"
    return None


def _date_range(value: Any, rule: DateRangeRule, field: FieldConfig, record: Record) -> Optional[str]:
    start = checks.parse_datetime(record.get(rule.start_field))
    end = checks.parse_datetime(record.get(rule.end_field))
    if start is not None and end is not None and start >= end:
        return "Start date must be before end date"
    return None


def _strong_password(
    value: Any, rule: StrongPasswordRule, field: FieldConfig, record: Record
) -> Optional[str]:
    if not isinstance(value, str):
        return None
    return checks.password_problems(
        value,
        rule.min_length,
        rule.require_uppercase,
        rule.require_lowercase,
        rule.require_number,
        rule.require_special,
    )


def _postal_code(value: Any, rule: PostalCodeRule, field: FieldConfig, record: Record) -> Optional[str]:
    if isinstance(value, str) and not checks.is_postal_code(value, rule.country_code):
        return f"{field.name} must be a valid {rule.country_code} postal code"
    return None


def _future(value: Any, rule: FutureRule, field: FieldConfig, record: Record) -> Optional[str]:
    moment = checks.parse_datetime(value)
    if moment is not None and moment <= checks.utc_now():
        return f"{field.name} must be a future date"
    return None


def _past(value: Any, rule: PastRule, field: FieldConfig, record: Record) -> Optional[str]:
    moment = checks.parse_datetime(value)
    if moment is not None and moment >= checks.utc_now():
        return f"{field.name} must be a past date"
    return None


def _min_age(value: Any, rule: MinAgeRule, field: FieldConfig, record: Record) -> Optional[str]:
    days = _age_days(value)
    if days is not None and days < rule.years * 365:
        return f"Must be at least {rule.years} years old"
    return None


def _max_age(value: Any, rule: MaxAgeRule, field: FieldConfig, record: Record) -> Optional[str]:
    days = _age_days(value)
    if days is not None and days > rule.years * 365:
        return f"Must be at most {rule.years} years old"
    return None


def _not_enforced(value: Any, rule: Any, field: FieldConfig, record: Record) -> Optional[str]:
    # Needs a database lookup, upload metadata or a function registry
    logger.warning(f"Rule '{rule.type}' on field '{field.id}' is not enforced; passing")
    return None


RULE_CHECKS: Dict[type, RuleCheck] = {
    RequiredRule: _required,
    MinLengthRule: _min_length,
    MaxLengthRule: _max_length,
    PatternRule: _pattern,
    MinRule: _min,
    MaxRule: _max,
    BetweenRule: _between,
    EmailRule: _string_check(checks.is_email, "must be a valid email address"),
    UrlRule: _string_check(checks.is_url, "must be a valid URL"),
    PhoneRule: _string_check(checks.is_phone, "must be a valid phone number"),
    CustomFunctionRule: _not_enforced,
    DependsOnRule: _depends_on,
    UniqueInRule: _not_enforced,
    MatchFieldRule: _match_field,
    CreditCardRule: _string_check(checks.luhn, "must be a valid credit card number"),
    IPv4Rule: _string_check(checks.is_ipv4, "must be a valid IPv4 address"),
    IPv6Rule: _string_check(checks.is_ipv6, "must be a valid IPv6 address"),
    UuidRule: _string_check(checks.is_uuid, "must be a valid UUID"),
    DateRangeRule: _date_range,
    FileSizeRule: _not_enforced,
    FileTypeRule: _not_enforced,
    StrongPasswordRule: _strong_password,
    AlphaNumericRule: _string_check(checks.is_alphanumeric, "must contain only alphanumeric characters"),
    LuhnRule: _string_check(checks.luhn, "failed Luhn check"),
    MacAddressRule: _string_check(checks.is_mac_address, "must be a valid MAC address"),
    IsbnRule: _string_check(checks.is_isbn, "must be a valid ISBN"),
    IbanRule: _string_check(checks.is_iban, "must be a valid IBAN"),
    SsnRule: _string_check(checks.is_ssn, "must be a valid SSN (XXX-XX-XXXX)"),
    PostalCodeRule: _postal_code,
    Base64Rule: _string_check(checks.is_base64, "must be valid Base64"),
    JsonRule: _string_check(checks.is_json, "must be valid JSON"),
    HexRule: _string_check(checks.is_hex, "must be valid hexadecimal"),
    AsciiRule: _string_check(str.isascii, "must contain only ASCII characters"),
    NotEmptyRule: _string_check(lambda s: bool(s.strip()), "must not be empty"),
    FutureRule: _future,
    PastRule: _past,
    MinAgeRule: _min_age,
    MaxAgeRule: _max_age,
}


# ==============================================================================
# ENTRY POINT
# ==============================================================================

def validate(record: Record, fields: Sequence[FieldConfig]) -> List[ValidationError]:
    """
    Validate a record against field definitions.

    Every failing rule is reported; evaluation does not stop at the first
    error. A missing or null required field yields one "is required" error
    and its other rules are skipped. A missing or null optional field is
    not validated at all.

    Args:
        record: Submitted data, field id to value
        fields: Field definitions in declaration order

    Returns:
        Validation errors in field then rule order (empty when valid)
    """
    errors: List[ValidationError] = []

    for field in fields:
        value = record.get(field.id)

        if value is None:
            if field.required:
                errors.append(ValidationError(field.id, f"{field.name} is required"))
            continue

        for rule in field.validations:
            if rule.condition is not None and not evaluate_condition(rule.condition, record):
                logger.debug(f"Skipping {rule.rule_type.type} on '{field.id}': condition not met")
                continue

            check = RULE_CHECKS.get(type(rule.rule_type))
            if check is None:
                logger.warning(f"No check registered for rule '{rule.rule_type.type}'")
                continue

            message = check(value, rule.rule_type, field, record)
            if message is not None:
                errors.append(ValidationError(field.id, rule.message or message))

    return errors
