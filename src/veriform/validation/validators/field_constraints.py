"""Built-in rule checks.

Each check receives the field value as text (already known to be non-blank),
the rule's parameters, and the current form values. Presence kinds
(required, requiredIf, requiredUnless) and remote are evaluated by the
engine and the client evaluator respectively, so they register without a
check function.
"""

import logging
import re
from typing import Any, Mapping
from urllib.parse import urlsplit

from veriform.validation.encoding import encode_conditional
from veriform.validation.registry import RuleRegistry
from veriform.validation.types import RuleKind

logger = logging.getLogger(__name__)


# =============================================================================
# Format Patterns
# =============================================================================

# Email: something@something.something, no whitespace
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# URL fallback when the value can't be parsed as an absolute URL
URL_PATTERN = re.compile(r"^https?://.+", re.IGNORECASE)

URL_SCHEME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*$")

MIN_PHONE_DIGITS = 10
CARD_DIGITS = (13, 19)


# =============================================================================
# Parameter helpers
# =============================================================================


def _int_param(params: Mapping[str, str], name: str) -> int | None:
    raw = params.get(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer rule parameter %s=%r", name, raw)
        return None


def _float_param(params: Mapping[str, str], name: str) -> float | None:
    raw = params.get(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric rule parameter %s=%r", name, raw)
        return None


def as_text(value: Any) -> str:
    """Text form of a field value as the checks see it."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


# =============================================================================
# Checks
# =============================================================================


def check_email(value: str, params: Mapping[str, str], values: Mapping[str, Any]) -> bool:
    return bool(EMAIL_PATTERN.match(value))


def check_min_length(value: str, params: Mapping[str, str], values: Mapping[str, Any]) -> bool:
    minimum = _int_param(params, "min")
    return minimum is None or len(value) >= minimum


def check_max_length(value: str, params: Mapping[str, str], values: Mapping[str, Any]) -> bool:
    maximum = _int_param(params, "max")
    return maximum is None or len(value) <= maximum


def check_length(value: str, params: Mapping[str, str], values: Mapping[str, Any]) -> bool:
    return check_min_length(value, params, values) and check_max_length(value, params, values)


def check_range(value: str, params: Mapping[str, str], values: Mapping[str, Any]) -> bool:
    """Inclusive numeric range. Non-numeric input fails."""
    try:
        number = float(value.strip())
    except ValueError:
        return False
    if number != number:  # NaN
        return False
    minimum = _float_param(params, "min")
    maximum = _float_param(params, "max")
    if minimum is not None and number < minimum:
        return False
    if maximum is not None and number > maximum:
        return False
    return True


def check_url(value: str, params: Mapping[str, str], values: Mapping[str, Any]) -> bool:
    """Absolute URL with a scheme; falls back to an http(s) prefix check."""
    text = value.strip()
    try:
        parts = urlsplit(text)
    except ValueError:
        return bool(URL_PATTERN.match(text))
    if not parts.scheme or not URL_SCHEME_PATTERN.match(parts.scheme):
        return False
    return bool(parts.netloc or parts.path)


def check_phone(value: str, params: Mapping[str, str], values: Mapping[str, Any]) -> bool:
    digits = re.sub(r"\D", "", value)
    return len(digits) >= MIN_PHONE_DIGITS


def luhn_valid(number: str) -> bool:
    """Luhn checksum over a string of digits."""
    total = 0
    for index, char in enumerate(reversed(number)):
        digit = int(char)
        if index % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return total % 10 == 0


def check_credit_card(value: str, params: Mapping[str, str], values: Mapping[str, Any]) -> bool:
    digits = re.sub(r"\D", "", value)
    if not CARD_DIGITS[0] <= len(digits) <= CARD_DIGITS[1]:
        return False
    return luhn_valid(digits)


def check_regex(value: str, params: Mapping[str, str], values: Mapping[str, Any]) -> bool:
    pattern = params.get("pattern")
    if not pattern:
        return True
    try:
        return re.search(pattern, value) is not None
    except re.error as e:
        # Log but don't fail - the pattern is a configuration problem
        logger.warning("Invalid regex pattern %r: %s", pattern, e)
        return True


def check_equal_to(value: str, params: Mapping[str, str], values: Mapping[str, Any]) -> bool:
    other = (params.get("other") or "").removeprefix("*.")
    if not other:
        return True
    if other not in values:
        return False
    return value == as_text(values[other])


# =============================================================================
# Registration
# =============================================================================


def register_builtin_rules() -> None:
    """Register all built-in rule kinds.

    Call this at application startup, before loading form metadata.
    """
    RuleRegistry.register(RuleKind.REQUIRED.value, message="{field} is required")
    RuleRegistry.register(
        RuleKind.REQUIRED_IF.value,
        params=("dependentProperty", "expectedValue"),
        message="{field} is required when {dependentproperty} is {expectedvalue}",
        encoder=encode_conditional,
    )
    RuleRegistry.register(
        RuleKind.REQUIRED_UNLESS.value,
        params=("dependentProperty", "expectedValue"),
        message="{field} is required unless {dependentproperty} is {expectedvalue}",
        encoder=encode_conditional,
    )
    RuleRegistry.register(
        RuleKind.EMAIL.value, check_email, message="{field} must be a valid email address"
    )
    RuleRegistry.register(
        RuleKind.MIN_LENGTH.value,
        check_min_length,
        params=("min",),
        message="{field} must be at least {min} characters",
    )
    RuleRegistry.register(
        RuleKind.MAX_LENGTH.value,
        check_max_length,
        params=("max",),
        message="{field} must be at most {max} characters",
    )
    RuleRegistry.register(
        RuleKind.LENGTH.value,
        check_length,
        params=("min", "max"),
        message="{field} must be between {min} and {max} characters",
    )
    RuleRegistry.register(
        RuleKind.RANGE.value,
        check_range,
        params=("min", "max"),
        message="{field} must be between {min} and {max}",
    )
    RuleRegistry.register(RuleKind.URL.value, check_url, message="{field} must be a valid URL")
    RuleRegistry.register(
        RuleKind.PHONE.value, check_phone, message="{field} must be a valid phone number"
    )
    RuleRegistry.register(
        RuleKind.CREDIT_CARD.value,
        check_credit_card,
        message="{field} must be a valid credit card number",
    )
    RuleRegistry.register(
        RuleKind.REGEX.value,
        check_regex,
        params=("pattern",),
        message="{field} is not in the correct format",
    )
    RuleRegistry.register(
        RuleKind.EQUAL_TO.value,
        check_equal_to,
        params=("other",),
        message="{field} must match {other}",
    )
    RuleRegistry.register(
        RuleKind.REMOTE.value,
        params=("url", "additionalFields", "type"),
        message="{field} is invalid",
    )
