"""
metadata/validator.py: JSON Schema validation for Veriform YAML metadata files.

Validates form definitions and lookup sets against JSON Schemas before they
are loaded.

Usage:
    from veriform.metadata.validator import validate_metadata_dir, validate_yaml_file

    issues = validate_metadata_dir(Path("metadata"))
    for issue in issues:
        print(issue)

Rule entries carry their parameters inline (``dependentProperty: Country``),
so the schema only fixes ``kind`` and ``message``; parameter names are checked
against the rule registry when the form is loaded.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from jsonschema import Draft202012Validator
from jsonschema.exceptions import ValidationError
from referencing import Registry, Resource
from referencing.jsonschema import DRAFT202012

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Public data types
# ---------------------------------------------------------------------------

_SCHEMAS_DIR = Path(__file__).parent / "schemas"

_SCHEMA_NAMES = (
    "_defs.schema.json",
    "form.schema.json",
    "lookups.schema.json",
)

FORM_SCHEMA = "form.schema.json"
LOOKUPS_SCHEMA = "lookups.schema.json"


@dataclass
class ValidationIssue:
    """A single validation finding for a metadata YAML file."""

    file: Path
    message: str
    path: str = ""          # location within the document, e.g. "fields[2]/rules[0]"
    severity: str = "error" # "error" | "warning"

    def __str__(self) -> str:
        loc = f" at {self.path}" if self.path else ""
        return f"[{self.severity.upper()}] {self.file}{loc}: {self.message}"


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _load_schema(name: str) -> dict[str, Any]:
    schema_path = _SCHEMAS_DIR / name
    with schema_path.open() as fh:
        return json.load(fh)


def _load_registry() -> Registry:
    """Build a jsonschema Registry containing all Veriform schemas."""
    resources = []
    for name in _SCHEMA_NAMES:
        schema = _load_schema(name)
        resources.append(
            (schema["$id"], Resource(contents=schema, specification=DRAFT202012))
        )
    return Registry().with_resources(resources)


def _json_path(error: ValidationError) -> str:
    """Convert a jsonschema ValidationError path to a readable string."""
    parts = []
    for p in error.absolute_path:
        if isinstance(p, int):
            parts.append(f"[{p}]")
        else:
            parts.append(str(p))
    return "/".join(parts).replace("/[", "[")


def _duplicate_field_issues(yaml_path: Path, doc: dict[str, Any]) -> list[ValidationIssue]:
    """Schema can't express "names unique within a list of objects"; check it here."""
    issues: list[ValidationIssue] = []
    seen: set[str] = set()
    for index, field_data in enumerate(doc.get("fields") or []):
        name = field_data.get("name") if isinstance(field_data, dict) else None
        if not isinstance(name, str):
            continue
        if name in seen:
            issues.append(
                ValidationIssue(
                    file=yaml_path,
                    message=f"Duplicate field name '{name}'",
                    path=f"fields[{index}]",
                )
            )
        seen.add(name)
        kinds: set[str] = set()
        for rule_index, rule_data in enumerate(field_data.get("rules") or []):
            kind = rule_data.get("kind") if isinstance(rule_data, dict) else None
            if isinstance(kind, str) and kind.lower() in kinds:
                issues.append(
                    ValidationIssue(
                        file=yaml_path,
                        message=f"Rule '{kind}' declared more than once; the later one wins",
                        path=f"fields[{index}]/rules[{rule_index}]",
                        severity="warning",
                    )
                )
            if isinstance(kind, str):
                kinds.add(kind.lower())
    return issues


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def validate_yaml_file(
    yaml_path: Path,
    schema_name: str,
    *,
    registry: Registry | None = None,
) -> list[ValidationIssue]:
    """
    Validate a single YAML file against the named schema.

    Args:
        yaml_path:   Path to the YAML file to validate.
        schema_name: Filename of the schema (e.g. ``"form.schema.json"``).
        registry:    Pre-built schema registry.  Built automatically if omitted.

    Returns:
        A list of :class:`ValidationIssue` objects (empty on success).
    """
    issues: list[ValidationIssue] = []

    # 1. Parse YAML
    try:
        with yaml_path.open() as fh:
            doc = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        return [ValidationIssue(file=yaml_path, message=f"YAML parse error: {exc}")]

    if doc is None:
        return [
            ValidationIssue(file=yaml_path, message="File is empty or contains only whitespace")
        ]

    # 2. Load schema + registry
    if registry is None:
        registry = _load_registry()

    schema = _load_schema(schema_name)
    validator = Draft202012Validator(schema, registry=registry)

    # 3. Collect validation errors
    for error in sorted(validator.iter_errors(doc), key=_json_path):
        issues.append(
            ValidationIssue(
                file=yaml_path,
                message=error.message,
                path=_json_path(error),
            )
        )

    # 4. Cross-item checks the schema can't express
    if schema_name == FORM_SCHEMA and isinstance(doc, dict):
        issues.extend(_duplicate_field_issues(yaml_path, doc))

    return issues


def validate_metadata_dir(
    metadata_dir: Path,
    *,
    strict: bool = False,
) -> list[ValidationIssue]:
    """
    Validate all YAML files under *metadata_dir*.

    Validates every ``forms/*.yaml`` file and, when present, ``lookups.yaml``.

    Args:
        metadata_dir: Root metadata directory (contains ``forms/``).
        strict:       If ``True``, warnings are escalated to errors.

    Returns:
        A flat list of :class:`ValidationIssue` objects across all files.
        Empty list means all files are valid.
    """
    if not metadata_dir.is_dir():
        return [
            ValidationIssue(
                file=metadata_dir,
                message=f"Metadata directory does not exist: {metadata_dir}",
            )
        ]

    # Build registry once, shared across all file validations
    try:
        registry = _load_registry()
    except (FileNotFoundError, json.JSONDecodeError) as exc:
        return [
            ValidationIssue(
                file=_SCHEMAS_DIR,
                message=f"Failed to load JSON Schema files: {exc}",
            )
        ]

    all_issues: list[ValidationIssue] = []
    targets: list[tuple[Path, str]] = []

    forms_dir = metadata_dir / "forms"
    if forms_dir.is_dir():
        targets.extend((f, FORM_SCHEMA) for f in sorted(forms_dir.glob("*.yaml")))

    lookups_file = metadata_dir / "lookups.yaml"
    if lookups_file.is_file():
        targets.append((lookups_file, LOOKUPS_SCHEMA))

    for yaml_file, schema_name in targets:
        file_issues = validate_yaml_file(yaml_file, schema_name, registry=registry)
        if strict:
            for issue in file_issues:
                if issue.severity == "warning":
                    issue.severity = "error"
        all_issues.extend(file_issues)

    logger.debug("Validated %d metadata files under %s", len(targets), metadata_dir)
    return all_issues
