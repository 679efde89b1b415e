"""Core types for the Veriform validation engine.

These types are shared by both evaluators:
- RuleDescriptor: one declarative rule attached to one field
- FieldSnapshot: immutable view of a field at evaluation time
- StructuredErrorReport: field-keyed error lists exchanged after a round trip
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, Mapping, Protocol


class VeriformError(Exception):
    """Base class for Veriform errors."""
    pass


class ConfigurationError(VeriformError):
    """Form metadata is inconsistent. Raised at setup, never during validation."""
    pass


class MissingDependentFieldError(ConfigurationError):
    """A conditional rule names a dependent field that does not exist."""

    def __init__(self, form: str, field_name: str, dependent_property: str):
        self.form = form
        self.field_name = field_name
        self.dependent_property = dependent_property
        super().__init__(
            f"Rule on '{form}.{field_name}' depends on '{dependent_property}', "
            f"which is not a field of '{form}'"
        )


class RuleKind(str, Enum):
    """Built-in rule kinds. Custom kinds are plain strings registered at startup."""

    REQUIRED = "required"
    EMAIL = "email"
    MIN_LENGTH = "minlength"
    MAX_LENGTH = "maxlength"
    LENGTH = "length"
    RANGE = "range"
    URL = "url"
    PHONE = "phone"
    CREDIT_CARD = "creditcard"
    REGEX = "regex"
    EQUAL_TO = "equalto"
    REMOTE = "remote"
    REQUIRED_IF = "requiredIf"
    REQUIRED_UNLESS = "requiredUnless"


CONDITIONAL_KINDS = frozenset({RuleKind.REQUIRED_IF.value, RuleKind.REQUIRED_UNLESS.value})

# Kinds handled before the blank-value exit, and the async-only kind
PRESENCE_KINDS = frozenset({RuleKind.REQUIRED.value}) | CONDITIONAL_KINDS
ASYNC_KINDS = frozenset({RuleKind.REMOTE.value})


@dataclass(frozen=True)
class RuleDescriptor:
    """A single declarative rule constraining one field.

    Attributes:
        field_name: Field the rule constrains
        kind: Rule kind tag (a RuleKind value or a registered custom kind)
        params: Parameter name -> text value (e.g. {"min": "8", "max": "20"})
        message: Concrete error message shown when the rule fails
        invert: True only for requiredUnless; negates the condition before arming
    """

    field_name: str
    kind: str
    params: dict[str, str] = field(default_factory=dict)
    message: str = ""
    invert: bool = False

    @property
    def is_conditional(self) -> bool:
        return self.kind in CONDITIONAL_KINDS

    @property
    def dependent_property(self) -> str | None:
        return self.params.get("dependentproperty")

    @property
    def expected_value(self) -> str | None:
        return self.params.get("expectedvalue")

    def param(self, name: str, default: str | None = None) -> str | None:
        return self.params.get(name, default)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "field": self.field_name,
            "kind": self.kind,
            "params": dict(self.params),
            "message": self.message,
        }
        if self.invert:
            result["invert"] = True
        return result


FieldValue = str | bool | None


@dataclass(frozen=True)
class FieldSnapshot:
    """Immutable view of one field, taken when an evaluation starts.

    Attributes:
        name: Field name
        value: Current value (text, checkbox state, or None when absent)
        visible: False when the field is hidden
        enabled: False when the field is disabled
        excluded: True when the field is flagged "do not validate"
    """

    name: str
    value: FieldValue = None
    visible: bool = True
    enabled: bool = True
    excluded: bool = False

    @property
    def exempt(self) -> bool:
        """True when no rule applies to this field right now."""
        return self.excluded or not self.visible or not self.enabled


class StructuredErrorReport:
    """Field name -> non-empty ordered list of error messages.

    A field with no errors never appears as a key.
    """

    def __init__(self, errors: Mapping[str, list[str]] | None = None):
        self._errors: dict[str, list[str]] = {}
        for name, messages in (errors or {}).items():
            self.extend(name, messages)

    def add(self, field_name: str, message: str) -> None:
        self._errors.setdefault(field_name, []).append(message)

    def extend(self, field_name: str, messages: list[str]) -> None:
        for message in messages:
            self.add(field_name, message)

    def get(self, field_name: str) -> list[str]:
        return list(self._errors.get(field_name, []))

    def first(self, field_name: str) -> str | None:
        messages = self._errors.get(field_name)
        return messages[0] if messages else None

    @property
    def valid(self) -> bool:
        return not self._errors

    def fields(self) -> list[str]:
        return list(self._errors)

    def to_dict(self) -> dict[str, list[str]]:
        return {name: list(messages) for name, messages in self._errors.items()}

    def __contains__(self, field_name: object) -> bool:
        return field_name in self._errors

    def __iter__(self) -> Iterator[str]:
        return iter(self._errors)

    def __len__(self) -> int:
        return len(self._errors)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, StructuredErrorReport):
            return self._errors == other._errors
        if isinstance(other, Mapping):
            return self._errors == dict(other)
        return NotImplemented

    def __repr__(self) -> str:
        return f"StructuredErrorReport({self._errors!r})"


# =============================================================================
# Imperative checks
# =============================================================================


@dataclass
class CheckDefinition:
    """Metadata definition for an imperative check (from YAML).

    Attributes:
        name: Registered check name (e.g. "unique")
        field: Field the check's error is attached to
        params: Check-specific parameters
        message: Error message shown when the check fails
    """

    name: str
    field: str
    params: dict[str, Any] = field(default_factory=dict)
    message: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CheckDefinition":
        """Create CheckDefinition from YAML/JSON dict."""
        return cls(
            name=data["name"],
            field=data["field"],
            params=data.get("params", {}),
            message=data.get("message", ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "field": self.field,
            "params": dict(self.params),
            "message": self.message,
        }


@dataclass
class CheckContext:
    """Context passed to imperative checks.

    Attributes:
        form: Form name
        field_name: Field being checked
        value: Bound value of the field
        record: All bound values of the submission
    """

    form: str
    field_name: str
    value: FieldValue
    record: Mapping[str, FieldValue] = field(default_factory=dict)


class LookupService(Protocol):
    """Protocol for data access during imperative checks.

    Checks that need to consult stored data (e.g., uniqueness) receive this
    service as a dependency.
    """

    async def exists(self, collection: str, value: str, *, ignore_case: bool = True) -> bool:
        """Check whether a value is present in a named collection.

        Args:
            collection: Collection name (e.g. "usernames")
            value: Value to look for
            ignore_case: Compare case-insensitively

        Returns:
            True if the value is present
        """
        ...


class ImperativeCheck(Protocol):
    """Protocol that all imperative checks must implement."""

    definition: CheckDefinition

    async def run(self, ctx: CheckContext, lookup: LookupService) -> bool:
        """Run the check.

        Returns:
            True when the value passes
        """
        ...
