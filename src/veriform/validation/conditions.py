"""Conditional predicate evaluation for requiredIf / requiredUnless.

Both evaluators call `is_armed` with the same kind of input: a rule and a
mapping of the form's current field values. The server passes its bound
record; the client passes a live view over the form's fields.
"""

import logging
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Mapping

from veriform.validation.types import MissingDependentFieldError, RuleDescriptor

logger = logging.getLogger(__name__)


def is_truthy(value: Any) -> bool:
    """Truthiness used when a conditional rule has no expected value.

    False, None, blank text and numeric zero are falsy; everything else is truthy.
    """
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip() != ""
    if isinstance(value, (int, float, Decimal)):
        return value != 0
    return True


def as_number(value: Any) -> Any:
    """Read numeric text as a Decimal; anything else is returned unchanged."""
    if isinstance(value, str) and value.strip():
        try:
            return Decimal(value.strip())
        except InvalidOperation:
            return value
    return value


def normalize(value: Any) -> str | None:
    """Normalize a value to case-folded text for comparison."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return value.name.casefold()
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).casefold()


def values_equal(actual: Any, expected: Any) -> bool:
    """Case-insensitive equality of a dependent value and an expected value.

    Booleans compare through their "true"/"false" text and enums through
    their symbolic name, so True, "True" and "true" are all equal.
    """
    if actual is None and expected is None:
        return True
    if actual is None or expected is None:
        return False
    return normalize(actual) == normalize(expected)


def condition_met(rule: RuleDescriptor, dependent_value: Any, dependent_type: str = "") -> bool:
    """Evaluate the rule's raw condition, before any inversion.

    Number fields are read as numbers for truthiness, so "0" and "0.0" are falsy.
    """
    expected = rule.expected_value
    if expected is None:
        if dependent_type == "number":
            dependent_value = as_number(dependent_value)
        return is_truthy(dependent_value)
    return values_equal(dependent_value, expected)


def is_armed(
    rule: RuleDescriptor,
    values: Mapping[str, Any],
    *,
    strict: bool = True,
    form: str = "",
    field_types: Mapping[str, str] | None = None,
) -> bool:
    """Decide whether a rule must be enforced against the current values.

    Non-conditional rules are always armed.

    Args:
        rule: The rule to evaluate
        values: Current field values keyed by field name
        strict: Raise when the dependent field is missing (server). When False
            the rule is inert and a warning is logged (client).
        form: Form name, used in diagnostics
        field_types: Field name -> input type, when known

    Raises:
        MissingDependentFieldError: strict mode and the dependent field is absent
    """
    if not rule.is_conditional:
        return True

    dependent = rule.dependent_property or ""
    if not dependent or dependent not in values:
        if strict:
            raise MissingDependentFieldError(form, rule.field_name, dependent)
        logger.warning(
            "Dependent field '%s' for %s rule on '%s' not found; rule is inert",
            dependent,
            rule.kind,
            rule.field_name,
        )
        return False

    met = condition_met(rule, values[dependent], (field_types or {}).get(dependent, ""))
    return not met if rule.invert else met
