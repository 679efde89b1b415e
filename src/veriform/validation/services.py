"""Server-side validation services for Veriform.

This module provides the services that validate a submission:
1. InMemoryLookupService: LookupService over named value sets
2. FormSchema: a form compiled to field accessors, rules and checks
3. ServerEvaluator: runs declarative rules and imperative checks and
   produces the Structured Error Report
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping

from veriform.metadata.loader import FormModel, validate_references
from veriform.validation.engine import evaluate_rules
from veriform.validation.registry import CheckRegistry
from veriform.validation.types import (
    CheckContext,
    ConfigurationError,
    FieldSnapshot,
    FieldValue,
    ImperativeCheck,
    LookupService,
    RuleDescriptor,
    StructuredErrorReport,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Lookup Service
# =============================================================================


class InMemoryLookupService:
    """LookupService backed by named in-memory value sets.

    Seeded from metadata/lookups.yaml at startup.
    """

    def __init__(self, collections: Mapping[str, Iterable[str]] | None = None):
        self.collections: dict[str, list[str]] = {
            name: list(values) for name, values in (collections or {}).items()
        }

    def add(self, collection: str, value: str) -> None:
        self.collections.setdefault(collection, []).append(value)

    async def exists(self, collection: str, value: str, *, ignore_case: bool = True) -> bool:
        values = self.collections.get(collection)
        if values is None:
            logger.warning("Lookup collection '%s' is not defined", collection)
            return False
        if ignore_case:
            target = value.casefold()
            return any(v.casefold() == target for v in values)
        return value in values


# =============================================================================
# Model Binding
# =============================================================================

CHECKED_VALUES = frozenset({"true", "on", "1", "yes"})

Accessor = Callable[[Any], Any]


def bind_value(field_type: str, raw: Any) -> FieldValue:
    """Bind a raw submitted value the way the client reads the same field.

    Checkboxes become booleans; everything else stays text. Multi-valued
    input (repeated form keys) binds its first value, except checkboxes,
    which are checked when any submitted value is.
    """
    if isinstance(raw, (list, tuple)):
        if field_type == "checkbox":
            return any(bind_value("checkbox", item) for item in raw)
        raw = raw[0] if raw else None

    if field_type == "checkbox":
        if isinstance(raw, bool):
            return raw
        if raw is None:
            return False
        return str(raw).strip().lower() in CHECKED_VALUES

    if raw is None or isinstance(raw, bool):
        return raw
    return str(raw)


def _make_accessor(name: str) -> Accessor:
    def access(data: Any) -> Any:
        if isinstance(data, Mapping):
            return data.get(name)
        return getattr(data, name, None)

    return access


@dataclass
class FormSchema:
    """A form compiled for repeated validation.

    Built once per form and cached by the evaluator.
    """

    form: FormModel
    accessors: dict[str, Accessor]
    field_types: dict[str, str]
    rules: dict[str, list[RuleDescriptor]]
    checks: list[ImperativeCheck]

    def bind(self, data: Any) -> dict[str, FieldValue]:
        """Bind submitted data (mapping or object) to one value per field."""
        return {
            name: bind_value(self.field_types[name], access(data))
            for name, access in self.accessors.items()
        }


# =============================================================================
# Server Evaluator
# =============================================================================


class ServerEvaluator:
    """Authoritative validation of submitted forms.

    Declarative rules run through the same engine the client uses, in
    strict mode. Imperative checks run on every submission, whatever the
    declarative outcome, and append to the per-field error lists.
    """

    def __init__(self, lookup: LookupService | None = None):
        self.lookup = lookup or InMemoryLookupService()
        self._schemas: dict[str, FormSchema] = {}

    def register(self, form: FormModel) -> FormSchema:
        """Compile and cache a form.

        Raises:
            ConfigurationError: A rule or check refers to a missing field, or a
                check is not registered
        """
        validate_references(form)

        checks: list[ImperativeCheck] = []
        for definition in form.checks:
            try:
                checks.append(CheckRegistry.create(definition))
            except ValueError as e:
                raise ConfigurationError(f"Form '{form.name}': {e}") from e

        schema = FormSchema(
            form=form,
            accessors={f.name: _make_accessor(f.name) for f in form.fields},
            field_types={f.name: f.type for f in form.fields},
            rules={f.name: list(f.rules) for f in form.fields},
            checks=checks,
        )
        self._schemas[form.name] = schema
        logger.debug("Registered form %s (%d fields, %d checks)", form.name, len(form.fields), len(checks))
        return schema

    def schema(self, form: FormModel | str) -> FormSchema:
        """Get the compiled schema for a form, compiling it on first use.

        Raises:
            ValueError: A form name that was never registered
        """
        if isinstance(form, FormModel):
            cached = self._schemas.get(form.name)
            if cached is None or cached.form is not form:
                return self.register(form)
            return cached

        cached = self._schemas.get(form)
        if cached is None:
            raise ValueError(f"Form '{form}' is not registered")
        return cached

    def list_forms(self) -> list[str]:
        return list(self._schemas.keys())

    async def validate(self, form: FormModel | str, data: Any) -> StructuredErrorReport:
        """Validate a submission.

        Args:
            form: Form model or registered form name
            data: Submitted values, as a mapping or an object with attributes

        Returns:
            StructuredErrorReport; valid when no field has errors
        """
        schema = self.schema(form)
        record = schema.bind(data)
        report = StructuredErrorReport()

        for name, rules in schema.rules.items():
            snapshot = FieldSnapshot(name=name, value=record[name])
            if not rules or snapshot.exempt:
                continue
            report.extend(
                name,
                evaluate_rules(
                    rules,
                    snapshot.value,
                    record,
                    strict=True,
                    form=schema.form.name,
                    field_types=schema.field_types,
                ),
            )

        for field_name, message in await self._run_checks(schema, schema.checks, record):
            report.add(field_name, message)

        if report.valid:
            logger.debug("Form %s passed validation", schema.form.name)
        else:
            logger.info(
                "Form %s failed validation on fields: %s",
                schema.form.name,
                ", ".join(report.fields()),
            )
        return report

    async def check_field(self, form: FormModel | str, field_name: str, data: Any) -> bool:
        """Run the imperative checks of a single field.

        Backs the remote check endpoint. A field without checks is valid.

        Raises:
            ValueError: The field is not part of the form
        """
        schema = self.schema(form)
        if field_name not in schema.accessors:
            raise ValueError(f"Field '{field_name}' is not part of form '{schema.form.name}'")

        record = schema.bind(data)
        checks = [c for c in schema.checks if c.definition.field == field_name]
        failures = await self._run_checks(schema, checks, record)
        return not failures

    async def _run_checks(
        self,
        schema: FormSchema,
        checks: list[ImperativeCheck],
        record: dict[str, FieldValue],
    ) -> list[tuple[str, str]]:
        """Run checks in parallel; return (field, message) for each failure in declaration order."""
        if not checks:
            return []

        tasks = [
            c.run(
                CheckContext(
                    form=schema.form.name,
                    field_name=c.definition.field,
                    value=record.get(c.definition.field),
                    record=record,
                ),
                self.lookup,
            )
            for c in checks
        ]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        failures: list[tuple[str, str]] = []
        for c, result in zip(checks, results):
            field_name = c.definition.field
            if isinstance(result, Exception):
                logger.error(
                    "Check %s on %s.%s raised %s",
                    c.definition.name,
                    schema.form.name,
                    field_name,
                    result,
                    exc_info=result,
                )
                failures.append((field_name, self._message(schema, c)))
            elif not result:
                failures.append((field_name, self._message(schema, c)))
        return failures

    def _message(self, schema: FormSchema, c: ImperativeCheck) -> str:
        if c.definition.message:
            return c.definition.message
        field_def = schema.form.get_field(c.definition.field)
        label = field_def.display_name if field_def else c.definition.field
        template = getattr(c, "default_message", "{field} is invalid")
        return template.format(field=label)
