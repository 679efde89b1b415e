"""Synchronous rule pass shared by the server and client evaluators.

Order within a field:
1. required
2. requiredIf
3. requiredUnless
4. blank values stop here (nothing else applies to an empty field)
5. remaining kinds in declaration order, remote excluded

The first failing rule wins; its message is the field's only error.
"""

import logging
from typing import Any, Mapping, Sequence

from veriform.validation.conditions import is_armed
from veriform.validation.registry import RuleRegistry
from veriform.validation.types import (
    ASYNC_KINDS,
    PRESENCE_KINDS,
    RuleDescriptor,
    RuleKind,
)
from veriform.validation.validators.field_constraints import as_text

logger = logging.getLogger(__name__)

PRESENCE_ORDER = (
    RuleKind.REQUIRED.value,
    RuleKind.REQUIRED_IF.value,
    RuleKind.REQUIRED_UNLESS.value,
)


def has_value(value: Any) -> bool:
    """Presence check used by required and by armed conditional rules."""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (list, tuple)):
        return len(value) > 0
    return str(value).strip() != ""


def is_blank(value: Any) -> bool:
    """True for values no format rule applies to (None or whitespace text)."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    return False


def evaluate_rules(
    rules: Sequence[RuleDescriptor],
    value: Any,
    values: Mapping[str, Any],
    *,
    strict: bool = True,
    form: str = "",
    field_types: Mapping[str, str] | None = None,
) -> list[str]:
    """Run the synchronous rules of one field.

    Args:
        rules: The field's rules, at most one per kind
        value: The field's current value
        values: All current field values, for conditionals and equalto
        strict: Missing dependent fields raise (server) or make the rule inert (client)
        form: Form name, used in diagnostics
        field_types: Field name -> input type; number dependents are read as numbers

    Returns:
        [message] of the first failing rule, or [] when the field passes
    """
    by_kind = {rule.kind: rule for rule in rules}

    for kind in PRESENCE_ORDER:
        rule = by_kind.get(kind)
        if rule is None:
            continue
        armed = is_armed(rule, values, strict=strict, form=form, field_types=field_types)
        if armed and not has_value(value):
            return [rule.message]

    if is_blank(value):
        return []

    text = as_text(value)
    for rule in rules:
        if rule.kind in PRESENCE_KINDS or rule.kind in ASYNC_KINDS:
            continue
        rule_type = RuleRegistry.find(rule.kind)
        if rule_type is None or rule_type.check is None:
            logger.debug("No check registered for rule kind %s; skipping", rule.kind)
            continue
        if not rule_type.check(text, rule.params, values):
            return [rule.message]

    return []


def has_async_rules(rules: Sequence[RuleDescriptor]) -> bool:
    return any(rule.kind in ASYNC_KINDS for rule in rules)
