"""Load and resolve form metadata from YAML files."""

from pathlib import Path
from dataclasses import dataclass, field
from typing import Any
import logging

import yaml

from veriform.validation.registry import RuleRegistry
from veriform.validation.types import (
    CheckDefinition,
    ConfigurationError,
    MissingDependentFieldError,
    RuleDescriptor,
    RuleKind,
)

logger = logging.getLogger(__name__)

FIELD_TYPES = (
    "text",
    "password",
    "email",
    "tel",
    "url",
    "number",
    "checkbox",
    "radio",
    "select",
    "textarea",
    "hidden",
)

# Keys of a rule entry that aren't rule parameters
_RULE_KEYS = ("kind", "message")


@dataclass
class FieldOption:
    value: str
    label: str


@dataclass
class FieldDefinition:
    name: str
    type: str
    display_name: str
    rules: list[RuleDescriptor] = field(default_factory=list)
    options: list[FieldOption] = field(default_factory=list)


@dataclass
class FormModel:
    name: str
    display_name: str
    fields: list[FieldDefinition]
    checks: list[CheckDefinition] = field(default_factory=list)

    def get_field(self, name: str) -> FieldDefinition | None:
        for field_def in self.fields:
            if field_def.name == name:
                return field_def
        return None

    def field_names(self) -> list[str]:
        return [f.name for f in self.fields]

    def rules_for(self, name: str) -> list[RuleDescriptor]:
        field_def = self.get_field(name)
        return list(field_def.rules) if field_def else []


class _TemplateValues(dict):
    """Format map that leaves unknown placeholders empty."""

    def __missing__(self, key: str) -> str:
        return ""


def to_param_text(value: Any) -> str:
    """Normalize an authored parameter value to the text both evaluators parse."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(to_param_text(v) for v in value)
    return str(value)


def format_message(template: str, display_name: str, params: dict[str, str], labels: dict[str, str]) -> str:
    """Format a default message template for one rule.

    Field references (dependentproperty, other) are shown by display name.
    """
    values = _TemplateValues(params)
    values["field"] = display_name
    for key in ("dependentproperty", "other"):
        if key in params:
            name = params[key].removeprefix("*.")
            values[key] = labels.get(name, name)
    values.setdefault("expectedvalue", "true")
    return template.format_map(values)


def validate_references(form: FormModel) -> None:
    """Check that every field a rule or check refers to exists on the form.

    Raises:
        MissingDependentFieldError: A conditional rule's dependent field is missing
        ConfigurationError: An equalto rule or a check refers to a missing field
    """
    names = set(form.field_names())
    for field_def in form.fields:
        for rule in field_def.rules:
            if rule.is_conditional and rule.dependent_property not in names:
                raise MissingDependentFieldError(
                    form.name, field_def.name, rule.dependent_property or ""
                )
            if rule.kind == RuleKind.EQUAL_TO.value:
                other = (rule.param("other") or "").removeprefix("*.")
                if other and other not in names:
                    raise ConfigurationError(
                        f"Rule on '{form.name}.{field_def.name}' compares to unknown field '{other}'"
                    )
    for check_def in form.checks:
        if check_def.field not in names:
            raise ConfigurationError(
                f"Check '{check_def.name}' on form '{form.name}' targets unknown field "
                f"'{check_def.field}'"
            )


class MetadataLoader:
    """Loads form definitions and lookup sets from YAML files.

    Rule kinds must be registered (see `register_builtin_rules`) before
    `load_all` is called.
    """

    def __init__(self, metadata_path: Path):
        self.metadata_path = metadata_path
        self.forms: dict[str, FormModel] = {}
        self.lookups: dict[str, list[str]] = {}

    def load_all(self) -> None:
        """Load all lookups and forms."""
        self._load_lookups()
        self._load_forms()

    def _load_lookups(self) -> None:
        """Load named value sets used by imperative checks."""
        lookups_file = self.metadata_path / "lookups.yaml"
        if not lookups_file.exists():
            return

        with open(lookups_file) as f:
            data = yaml.safe_load(f) or {}
        for name, values in (data.get("lookups") or {}).items():
            self.lookups[name] = [to_param_text(v) for v in values or []]

    def _load_forms(self) -> None:
        """Load form definitions."""
        forms_path = self.metadata_path / "forms"
        if not forms_path.exists():
            return

        for yaml_file in sorted(forms_path.glob("*.yaml")):
            with open(yaml_file) as f:
                data = yaml.safe_load(f)
            if not data or "form" not in data:
                continue
            form = self._resolve_form(data)
            if form.name in self.forms:
                raise ConfigurationError(
                    f"Form '{form.name}' is defined more than once ({yaml_file.name})"
                )
            validate_references(form)
            self.forms[form.name] = form
            logger.debug("Loaded form %s from %s", form.name, yaml_file.name)

    def resolve_form(self, data: dict) -> FormModel:
        """Resolve and check a single form definition (e.g. from a test or another source)."""
        form = self._resolve_form(data)
        validate_references(form)
        return form

    def _resolve_form(self, data: dict) -> FormModel:
        """Convert a form dict to a FormModel."""
        name = data["form"]
        fields_data = data.get("fields", [])

        # Display names first, so messages can refer to other fields by label
        labels = {
            f["name"]: f.get("displayName", self._to_display_name(f["name"])) for f in fields_data
        }

        fields = [self._resolve_field(name, f, labels) for f in fields_data]
        seen: set[str] = set()
        for field_def in fields:
            if field_def.name in seen:
                raise ConfigurationError(f"Field '{field_def.name}' is declared twice on '{name}'")
            seen.add(field_def.name)

        return FormModel(
            name=name,
            display_name=data.get("displayName", self._to_display_name(name)),
            fields=fields,
            checks=[CheckDefinition.from_dict(c) for c in data.get("checks", [])],
        )

    def _resolve_field(self, form_name: str, data: dict, labels: dict[str, str]) -> FieldDefinition:
        """Convert a field dict to a FieldDefinition."""
        name = data["name"]
        field_type = data.get("type", "text")
        if field_type not in FIELD_TYPES:
            raise ConfigurationError(
                f"Field '{form_name}.{name}' has unknown type '{field_type}'"
            )
        display_name = labels[name]

        # One rule per kind; a later entry replaces an earlier one in place
        rules: dict[str, RuleDescriptor] = {}
        for rule_data in data.get("rules", []):
            rule = self._resolve_rule(form_name, name, display_name, rule_data, labels)
            if rule.kind in rules:
                logger.warning(
                    "Rule %s declared twice on %s.%s; the later one wins",
                    rule.kind,
                    form_name,
                    name,
                )
            rules[rule.kind] = rule

        return FieldDefinition(
            name=name,
            type=field_type,
            display_name=display_name,
            rules=list(rules.values()),
            options=[self._resolve_option(o) for o in data.get("options", [])],
        )

    def _resolve_rule(
        self,
        form_name: str,
        field_name: str,
        display_name: str,
        data: dict,
        labels: dict[str, str],
    ) -> RuleDescriptor:
        """Convert a rule dict to a RuleDescriptor with a concrete message."""
        kind_name = data.get("kind")
        if not kind_name:
            raise ConfigurationError(f"Rule on '{form_name}.{field_name}' has no kind")
        rule_type = RuleRegistry.find(kind_name)
        if rule_type is None:
            raise ConfigurationError(
                f"Unknown rule kind '{kind_name}' on '{form_name}.{field_name}'. "
                "Available kinds: " + ", ".join(RuleRegistry.list_registered())
            )

        params: dict[str, str] = {}
        for key, value in data.items():
            if key in _RULE_KEYS:
                continue
            param = str(key).lower()
            if param not in rule_type.params:
                raise ConfigurationError(
                    f"Rule {rule_type.name} on '{form_name}.{field_name}' has unknown "
                    f"parameter '{key}'"
                )
            if value is None:
                continue
            params[param] = to_param_text(value)

        invert = rule_type.name == RuleKind.REQUIRED_UNLESS.value
        if rule_type.name in (RuleKind.REQUIRED_IF.value, RuleKind.REQUIRED_UNLESS.value):
            if not params.get("dependentproperty"):
                raise ConfigurationError(
                    f"Rule {rule_type.name} on '{form_name}.{field_name}' needs a dependentProperty"
                )

        message = data.get("message") or format_message(
            rule_type.message, display_name, params, labels
        )
        return RuleDescriptor(
            field_name=field_name,
            kind=rule_type.name,
            params=params,
            message=message,
            invert=invert,
        )

    def _resolve_option(self, data: Any) -> FieldOption:
        if isinstance(data, dict):
            value = to_param_text(data.get("value"))
            return FieldOption(value=value, label=str(data.get("label", value)))
        return FieldOption(value=to_param_text(data), label=str(data))

    def _to_display_name(self, name: str) -> str:
        """Convert PascalCase/camelCase to Title Case."""
        result = []
        for i, char in enumerate(name):
            if char.isupper() and i > 0 and not name[i - 1].isupper():
                result.append(" ")
            result.append(char)
        text = "".join(result)
        return text[:1].upper() + text[1:]

    def get_form(self, name: str) -> FormModel | None:
        """Get a resolved form by name."""
        return self.forms.get(name)

    def list_forms(self) -> list[str]:
        """List all form names."""
        return list(self.forms.keys())
