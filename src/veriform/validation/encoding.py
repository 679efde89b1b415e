"""Rule encoding contract between the server and the client.

A field's rules travel to the client as flat string attributes:

    data-val                      "true" when the field has any rule
    data-val-{kind}               the rule's error message
    data-val-{kind}-{param}       one attribute per parameter
    data-val-{kind}-invert        "true", only for inverted conditionals

Kind and parameter names are alphanumeric, so splitting the attribute name
on "-" recovers them unambiguously. Names are emitted lowercase; decoding
maps the kind back to its registered spelling.
"""

import logging
from typing import Iterable, Mapping

from veriform.validation.registry import RuleRegistry
from veriform.validation.types import RuleDescriptor

logger = logging.getLogger(__name__)

DATA_VAL = "data-val"
DATA_VAL_PREFIX = DATA_VAL + "-"
INVERT_PARAM = "invert"


def encode_standard(rule: RuleDescriptor) -> dict[str, str]:
    """Encode a rule as its message attribute plus one attribute per parameter."""
    prefix = DATA_VAL_PREFIX + rule.kind.lower()
    attributes = {prefix: rule.message}
    for name, value in rule.params.items():
        attributes[f"{prefix}-{name.lower()}"] = value
    return attributes


def encode_conditional(rule: RuleDescriptor) -> dict[str, str]:
    """Encode a requiredIf/requiredUnless rule.

    The expected value attribute is only present when the rule has one; the
    invert attribute only when the rule is inverted.
    """
    attributes = encode_standard(rule)
    if rule.invert:
        attributes[f"{DATA_VAL_PREFIX}{rule.kind.lower()}-{INVERT_PARAM}"] = "true"
    return attributes


def encode_rule(rule: RuleDescriptor) -> dict[str, str]:
    """Encode one rule using its kind's registered encoder."""
    rule_type = RuleRegistry.find(rule.kind)
    encoder = rule_type.encoder if rule_type and rule_type.encoder else encode_standard
    return encoder(rule)


def encode_field(rules: Iterable[RuleDescriptor]) -> dict[str, str]:
    """Encode all rules of a field, including the data-val presence marker.

    Returns an empty dict for a field without rules.
    """
    attributes: dict[str, str] = {}
    for rule in rules:
        if not attributes:
            attributes[DATA_VAL] = "true"
        attributes.update(encode_rule(rule))
    return attributes


def decode_attributes(field_name: str, attributes: Mapping[str, str | None]) -> list[RuleDescriptor]:
    """Rebuild rule descriptors from a field's attributes.

    Attributes that aren't part of the encoding are ignored. A kind with
    parameters but no message attribute is dropped.

    Args:
        field_name: Name of the field the attributes belong to
        attributes: All attributes of the field element

    Returns:
        Rules in the order their kinds first appear
    """
    order: dict[str, None] = {}
    messages: dict[str, str] = {}
    params: dict[str, dict[str, str]] = {}

    for name, value in attributes.items():
        key = name.lower()
        if not key.startswith(DATA_VAL_PREFIX):
            continue
        parts = key[len(DATA_VAL_PREFIX):].split("-")
        if len(parts) > 2 or not all(parts):
            logger.debug("Ignoring malformed validation attribute %s on %s", name, field_name)
            continue
        kind = parts[0]
        order.setdefault(kind, None)
        if len(parts) == 1:
            messages[kind] = value or ""
        else:
            params.setdefault(kind, {})[parts[1]] = value or ""

    rules = []
    for kind in order:
        if kind not in messages:
            logger.debug("Validation parameters for %s on %s have no message", kind, field_name)
            continue
        rule_params = dict(params.get(kind, {}))
        invert = rule_params.pop(INVERT_PARAM, "").lower() == "true"
        rules.append(
            RuleDescriptor(
                field_name=field_name,
                kind=RuleRegistry.canonical_name(kind),
                params=rule_params,
                message=messages[kind],
                invert=invert,
            )
        )
    return rules
