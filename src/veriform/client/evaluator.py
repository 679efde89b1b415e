"""Client-side evaluation of encoded rules.

The client evaluator reads rules back from a field's ``data-val-*``
attributes, runs the same synchronous engine as the server (in lenient
mode: a missing dependent field makes a conditional rule inert), adds the
asynchronous remote check, and writes results to the field's display target.

Binding follows a small per-element state machine:

    UNBOUND -> IDLE -> VALIDATING -> IDLE

Events (blur, input, change) only act on bound elements; a submit sweep
validates every bound, non-excluded field synchronously and does not wait
for pending remote checks.
"""

from __future__ import annotations

import logging
import weakref
from enum import Enum
from typing import Iterable, Iterator, Mapping

from veriform.client.dom import VALID_TARGET_CLASS, Form, FormElement
from veriform.client.remote import RemoteValidator, parse_additional_fields
from veriform.config import VeriformConfig
from veriform.validation.encoding import decode_attributes
from veriform.validation.engine import evaluate_rules, is_blank
from veriform.validation.types import FieldSnapshot, FieldValue, RuleDescriptor, RuleKind
from veriform.validation.validators.field_constraints import as_text

logger = logging.getLogger(__name__)

# CSS classes and markers shared with hosts' stylesheets and scripts
INPUT_ERROR_CLASS = "input-validation-error"
INPUT_VALID_CLASS = "input-validation-valid"
TARGET_ERROR_CLASS = "field-validation-error"
TARGET_VALID_CLASS = VALID_TARGET_CLASS
ERROR_ATTR = "data-validation-error"
SHOULD_VALIDATE_ATTR = "data-should-validate"
ATTACHED_ATTR = "data-validation-attached"

EVENTS = ("blur", "input", "change")


class BindingState(Enum):
    UNBOUND = "unbound"
    IDLE = "idle"
    VALIDATING = "validating"


def field_value(element: FormElement) -> FieldValue:
    """Current value as the rules see it.

    Checkbox -> checked state; radio -> value of the checked radio in its
    group, or ""; anything else -> value or "".
    """
    if element.type == "checkbox":
        return element.checked
    if element.type == "radio":
        if element.form is not None:
            chosen = element.form.checked_radio(element.name)
            return chosen.value if chosen else ""
        return element.value if element.checked else ""
    return element.value or ""


class FormValues(Mapping[str, FieldValue]):
    """Live view of a form's values keyed by field name."""

    def __init__(self, form: Form):
        self.form = form

    def __getitem__(self, name: str) -> FieldValue:
        elements = self.form.elements_named(name)
        if not elements:
            raise KeyError(name)
        return field_value(elements[0])

    def __iter__(self) -> Iterator[str]:
        return iter(self.form.names())

    def __len__(self) -> int:
        return len(self.form.names())


class ClientEvaluator:
    """Validates form elements against their encoded rules.

    Args:
        remote: Remote-check transport; a default RemoteValidator is created
            when omitted
    """

    def __init__(self, remote: RemoteValidator | None = None):
        self.remote = remote or RemoteValidator()
        self._bound: weakref.WeakSet[FormElement] = weakref.WeakSet()
        self._states: weakref.WeakKeyDictionary[FormElement, BindingState] = (
            weakref.WeakKeyDictionary()
        )
        self._pending: weakref.WeakKeyDictionary[FormElement, int] = weakref.WeakKeyDictionary()

    @classmethod
    def from_config(cls, config: VeriformConfig) -> ClientEvaluator:
        """Create an evaluator whose remote checks use the configured timeout."""
        return cls(remote=RemoteValidator(timeout=config.remote_timeout))

    # -------------------------------------------------------------------------
    # Snapshots and rules
    # -------------------------------------------------------------------------

    def snapshot(self, element: FormElement) -> FieldSnapshot:
        return FieldSnapshot(
            name=element.name,
            value=field_value(element),
            visible=not element.hidden and element.type != "hidden",
            enabled=not element.disabled,
            excluded=element.get_attribute(SHOULD_VALIDATE_ATTR) == "false",
        )

    def rules_for(self, element: FormElement) -> list[RuleDescriptor]:
        return decode_attributes(element.name, element.attributes)

    def _values(self, element: FormElement) -> Mapping[str, FieldValue]:
        if element.form is not None:
            return FormValues(element.form)
        return {element.name: field_value(element)}

    def _field_types(self, element: FormElement) -> Mapping[str, str]:
        if element.form is not None:
            return element.form.field_types()
        return {element.name: element.type}

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    def validate_field_sync(self, element: FormElement) -> list[str]:
        """Run the synchronous rules of one field. Never touches the display."""
        snapshot = self.snapshot(element)
        if snapshot.exempt:
            return []
        return evaluate_rules(
            self.rules_for(element),
            snapshot.value,
            self._values(element),
            strict=False,
            form=element.form.id if element.form else "",
            field_types=self._field_types(element),
        )

    async def validate_field_async(self, element: FormElement) -> list[str]:
        """Synchronous rules, then the remote check when they all pass."""
        errors = self.validate_field_sync(element)
        if errors:
            return errors

        snapshot = self.snapshot(element)
        if snapshot.exempt or is_blank(snapshot.value):
            return []

        remote_rule = next(
            (r for r in self.rules_for(element) if r.kind == RuleKind.REMOTE.value), None
        )
        if remote_rule is None or not remote_rule.param("url"):
            return []

        values = self._values(element)
        additional = {
            name: as_text(values[name])
            for name in parse_additional_fields(remote_rule.param("additionalfields"))
            if name != element.name and name in values
        }

        bound = element in self._bound
        if bound:
            self._pending[element] = self._pending.get(element, 0) + 1
            self._states[element] = BindingState.VALIDATING
        try:
            valid = await self.remote.check(
                remote_rule.param("url") or "",
                element.name,
                as_text(snapshot.value),
                additional,
                method=remote_rule.param("type") or "POST",
            )
        finally:
            if bound:
                # Overlapping checks keep the field VALIDATING until the last one settles
                self._pending[element] -= 1
                if not self._pending[element]:
                    del self._pending[element]
                    self._states[element] = BindingState.IDLE

        return [] if valid else [remote_rule.message]

    # -------------------------------------------------------------------------
    # Display
    # -------------------------------------------------------------------------

    def display_errors(self, element: FormElement, errors: list[str]) -> None:
        """Show the first error on the field's display target, or clear it."""
        target = element.form.error_target(element.name) if element.form else None
        group = element.form.elements_named(element.name) if element.form else [element]

        if errors:
            for e in group:
                e.add_class(INPUT_ERROR_CLASS)
                e.remove_class(INPUT_VALID_CLASS)
                e.set_attribute(ERROR_ATTR, errors[0])
            if target is not None:
                target.text = errors[0]
                target.visible = True
                target.add_class(TARGET_ERROR_CLASS)
                target.remove_class(TARGET_VALID_CLASS)
        else:
            for e in group:
                e.remove_class(INPUT_ERROR_CLASS)
                e.add_class(INPUT_VALID_CLASS)
                e.remove_attribute(ERROR_ATTR)
            if target is not None:
                target.text = ""
                target.visible = False
                target.remove_class(TARGET_ERROR_CLASS)
                target.add_class(TARGET_VALID_CLASS)

    def clear_errors(self, element: FormElement) -> None:
        self.display_errors(element, [])
        for e in element.form.elements_named(element.name) if element.form else [element]:
            e.remove_class(INPUT_VALID_CLASS)

    def showing_error(self, element: FormElement) -> bool:
        target = element.form.error_target(element.name) if element.form else None
        if target is not None:
            return target.has_class(TARGET_ERROR_CLASS)
        return element.has_class(INPUT_ERROR_CLASS)

    def set_should_validate(self, element: FormElement, flag: bool) -> None:
        """Toggle the "do not validate" flag used by conditionally shown fields.

        Turning validation off clears the field's errors and its value.
        """
        element.set_attribute(SHOULD_VALIDATE_ATTR, "true" if flag else "false")
        if not flag:
            if element.is_checkable:
                element.checked = False
            else:
                element.value = ""
            self.clear_errors(element)

    # -------------------------------------------------------------------------
    # Binding
    # -------------------------------------------------------------------------

    def state(self, element: FormElement) -> BindingState:
        return self._states.get(element, BindingState.UNBOUND)

    def attach_element(self, element: FormElement) -> bool:
        """Bind one element. Returns False when it was already bound."""
        if element in self._bound:
            return False
        self._bound.add(element)
        self._states[element] = BindingState.IDLE
        return True

    def attach(self, form: Form) -> int:
        """Bind every validatable element of a form.

        Idempotent: a form carrying the attached marker is skipped.

        Returns:
            Number of newly bound elements
        """
        if form.get_attribute(ATTACHED_ATTR) == "true":
            return 0
        form.set_attribute(ATTACHED_ATTR, "true")

        count = sum(1 for e in form.validatable_elements() if self.attach_element(e))
        logger.debug("Attached %d fields on form %s", count, form.id or "<anonymous>")
        return count

    def attach_all(self, forms: Iterable[Form]) -> int:
        """Bind every form under a root, e.g. after a content swap."""
        return sum(self.attach(form) for form in forms)

    async def handle_event(self, element: FormElement, event: str) -> list[str] | None:
        """Dispatch a DOM event to a bound element.

        Returns:
            The displayed errors, or None when the event triggered nothing
        """
        if event not in EVENTS:
            raise ValueError(f"Unsupported event '{event}'")
        if element not in self._bound:
            return None
        if event == "input" and not self.showing_error(element):
            return None
        if event == "change" and not element.is_checkable:
            return None

        errors = await self.validate_field_async(element)
        self.display_errors(element, errors)
        return errors

    # -------------------------------------------------------------------------
    # Submission
    # -------------------------------------------------------------------------

    def validate_form(self, form: Form) -> dict[str, list[str]]:
        """Synchronous sweep over every validatable field, displaying results.

        Checkbox groups are validated once per name; excluded fields are skipped.

        Returns:
            Field name -> errors, for failing fields only
        """
        errors: dict[str, list[str]] = {}
        seen_groups: set[str] = set()

        for element in form.validatable_elements():
            if element.get_attribute(SHOULD_VALIDATE_ATTR) == "false":
                continue
            if element.is_checkable:
                if element.name in seen_groups:
                    continue
                seen_groups.add(element.name)

            field_errors = self.validate_field_sync(element)
            self.display_errors(element, field_errors)
            if field_errors:
                errors[element.name] = field_errors

        return errors

    def handle_submit(self, form: Form) -> bool:
        """Gate a submission. Returns True when it may proceed."""
        errors = self.validate_form(form)
        if errors:
            logger.debug("Submission of %s blocked: %s", form.id or "<anonymous>", ", ".join(errors))
        return not errors
