"""Form metadata CLI commands: validate, encode and check."""

import asyncio
import json
from pathlib import Path

import click

from veriform.client.dom import render_form
from veriform.config import VeriformConfig
from veriform.metadata.loader import FormModel, MetadataLoader
from veriform.metadata.validator import FORM_SCHEMA, validate_metadata_dir, validate_yaml_file
from veriform.validation import (
    ConfigurationError,
    encode_field,
    register_builtin_rules,
    register_canned_checks,
)
from veriform.validation.services import InMemoryLookupService, ServerEvaluator


def _load(metadata_path: Path) -> MetadataLoader:
    """Register built-ins and load all metadata, exiting on configuration errors."""
    register_builtin_rules()
    register_canned_checks()

    if not metadata_path.exists():
        click.echo(f"Error: Metadata directory not found at {metadata_path}", err=True)
        raise SystemExit(1)

    loader = MetadataLoader(metadata_path)
    try:
        loader.load_all()
    except ConfigurationError as e:
        click.echo(click.style(f"Configuration error: {e}", fg="red"), err=True)
        raise SystemExit(1)
    return loader


def _get_form(loader: MetadataLoader, name: str) -> FormModel:
    form = loader.get_form(name)
    if form is None:
        click.echo(
            f"Error: Form '{name}' not found. Available: {', '.join(loader.list_forms())}",
            err=True,
        )
        raise SystemExit(1)
    return form


@click.group()
@click.option(
    "--metadata",
    "metadata_path",
    default=None,
    type=click.Path(path_type=Path),
    help="Metadata directory (default: VERIFORM_METADATA_PATH or ./metadata).",
)
@click.pass_context
def forms(ctx: click.Context, metadata_path: Path | None):
    """Form metadata commands."""
    ctx.obj = metadata_path or VeriformConfig.from_env().metadata_path


@forms.command()
@click.option(
    "--strict",
    is_flag=True,
    default=False,
    help="Treat warnings as errors.",
)
@click.option(
    "--path",
    "target_path",
    default=None,
    type=click.Path(exists=True, path_type=Path),
    help="Validate a single form YAML file instead of the whole metadata directory.",
)
@click.pass_obj
def validate(metadata_path: Path, strict: bool, target_path: Path | None):
    """Validate form metadata against JSON Schemas, then load it."""
    if target_path is not None:
        schema_issues = validate_yaml_file(target_path, FORM_SCHEMA)
    else:
        if not metadata_path.exists():
            click.echo(f"Error: Metadata directory not found at {metadata_path}", err=True)
            raise SystemExit(1)
        schema_issues = validate_metadata_dir(metadata_path, strict=strict)

    errors = [i for i in schema_issues if i.severity == "error"]
    warnings = [i for i in schema_issues if i.severity == "warning"]

    for issue in schema_issues:
        colour = "red" if issue.severity == "error" else "yellow"
        click.echo(click.style(str(issue), fg=colour))

    if errors:
        click.echo(
            click.style(
                f"\n{len(errors)} schema error(s) found"
                + (f", {len(warnings)} warning(s)" if warnings else ""),
                fg="red",
                bold=True,
            )
        )
        raise SystemExit(1)

    if warnings:
        click.echo(click.style(f"{len(warnings)} warning(s) found.", fg="yellow"))

    # Semantic validation: rule kinds, parameters, field references, checks
    if target_path is None:
        loader = _load(metadata_path)
        evaluator = ServerEvaluator(InMemoryLookupService(loader.lookups))
        try:
            for name in loader.list_forms():
                evaluator.register(loader.forms[name])
        except ConfigurationError as e:
            click.echo(click.style(f"\nSemantic validation failed: {e}", fg="red"), err=True)
            raise SystemExit(1)

        names = loader.list_forms()
        click.echo(f"\nLoaded {len(names)} forms:")
        for name in sorted(names):
            form = loader.forms[name]
            rule_count = sum(len(f.rules) for f in form.fields)
            click.echo(
                f"  ✓ {name} ({len(form.fields)} fields, {rule_count} rules, "
                f"{len(form.checks)} checks)"
            )

    click.echo(click.style("\nAll metadata is valid.", fg="green", bold=True))


@forms.command()
@click.argument("form_name")
@click.option("--html", "as_html", is_flag=True, default=False, help="Render markup instead of JSON.")
@click.pass_obj
def encode(metadata_path: Path, form_name: str, as_html: bool):
    """Print the client attributes of every field of a form."""
    loader = _load(metadata_path)
    form = _get_form(loader, form_name)

    if as_html:
        click.echo(render_form(form, action=f"/api/forms/{form.name}"))
        return

    attributes = {f.name: encode_field(f.rules) for f in form.fields}
    click.echo(json.dumps(attributes, indent=2))


@forms.command()
@click.argument("form_name")
@click.option(
    "--data",
    "-d",
    "pairs",
    multiple=True,
    help="Submitted value as name=value. Repeat for several fields.",
)
@click.pass_obj
def check(metadata_path: Path, form_name: str, pairs: tuple[str, ...]):
    """Validate a submission server-side and print the error report."""
    loader = _load(metadata_path)
    form = _get_form(loader, form_name)

    data: dict[str, str] = {}
    for pair in pairs:
        name, sep, value = pair.partition("=")
        if not sep:
            raise click.BadParameter(f"expected name=value, got '{pair}'", param_hint="--data")
        data[name] = value

    evaluator = ServerEvaluator(InMemoryLookupService(loader.lookups))
    report = asyncio.run(evaluator.validate(form, data))

    if report.valid:
        click.echo(click.style("Valid.", fg="green"))
        return

    click.echo(json.dumps(report.to_dict(), indent=2))
    raise SystemExit(1)
