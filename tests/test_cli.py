"""Tests for Veriform CLI commands."""

import json
import logging
from pathlib import Path

import pytest
from click.testing import CliRunner

from veriform.cli.main import cli

METADATA_DIR = Path(__file__).parent.parent / "metadata"


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def restore_log_level():
    """The --log-level option sets the package logger level; undo it."""
    logger = logging.getLogger("veriform")
    level = logger.level
    yield
    logger.setLevel(level)


@pytest.fixture
def in_repo_dir(monkeypatch):
    """Ensure CWD is the repository root for metadata resolution."""
    monkeypatch.delenv("VERIFORM_METADATA_PATH", raising=False)
    monkeypatch.chdir(METADATA_DIR.parent)


class TestFormsValidate:
    def test_validate_succeeds(self, runner, in_repo_dir):
        result = runner.invoke(cli, ["forms", "validate"])
        assert result.exit_code == 0
        assert "All metadata is valid" in result.output

    def test_validate_shows_forms(self, runner, in_repo_dir):
        result = runner.invoke(cli, ["forms", "validate"])
        assert "ConditionalValidation" in result.output
        assert "RemoteValidation (3 fields, 8 rules, 2 checks)" in result.output

    def test_validate_single_file(self, runner, in_repo_dir):
        result = runner.invoke(
            cli, ["forms", "validate", "--path", str(METADATA_DIR / "forms" / "register.yaml")]
        )
        assert result.exit_code == 0
        assert "All metadata is valid" in result.output

    def test_validate_explicit_metadata_dir(self, runner):
        result = runner.invoke(cli, ["forms", "--metadata", str(METADATA_DIR), "validate"])
        assert result.exit_code == 0

    def test_missing_directory(self, runner, tmp_path):
        result = runner.invoke(cli, ["forms", "--metadata", str(tmp_path / "nope"), "validate"])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_schema_error(self, runner, tmp_path):
        forms_dir = tmp_path / "forms"
        forms_dir.mkdir()
        (forms_dir / "broken.yaml").write_text("form: Broken\n")

        result = runner.invoke(cli, ["forms", "--metadata", str(tmp_path), "validate"])

        assert result.exit_code == 1
        assert "schema error" in result.output

    def test_semantic_error(self, runner, tmp_path):
        forms_dir = tmp_path / "forms"
        forms_dir.mkdir()
        (forms_dir / "dangling.yaml").write_text(
            "form: Dangling\n"
            "fields:\n"
            "  - name: PhoneNumber\n"
            "    rules:\n"
            "      - kind: requiredIf\n"
            "        dependentProperty: AcceptTerms\n"
        )

        result = runner.invoke(cli, ["forms", "--metadata", str(tmp_path), "validate"])

        assert result.exit_code == 1
        assert "AcceptTerms" in result.output

    def test_strict_fails_on_warnings(self, runner, tmp_path):
        forms_dir = tmp_path / "forms"
        forms_dir.mkdir()
        (forms_dir / "dupe.yaml").write_text(
            "form: Dupe\n"
            "fields:\n"
            "  - name: Email\n"
            "    rules:\n"
            "      - kind: email\n"
            "      - kind: email\n"
        )

        lenient = runner.invoke(cli, ["forms", "--metadata", str(tmp_path), "validate"])
        strict = runner.invoke(cli, ["forms", "--metadata", str(tmp_path), "validate", "--strict"])

        assert lenient.exit_code == 0
        assert "1 warning(s) found" in lenient.output
        assert strict.exit_code == 1


class TestFormsEncode:
    def test_encode_json(self, runner, in_repo_dir):
        result = runner.invoke(cli, ["forms", "encode", "SimpleConditional"])

        assert result.exit_code == 0
        attributes = json.loads(result.output)
        assert attributes["PhoneNumber"]["data-val-requiredif-dependentproperty"] == "AcceptTerms"
        assert "data-val-requiredif-expectedvalue" not in attributes["PhoneNumber"]
        assert attributes["AcceptTerms"] == {}

    def test_encode_html(self, runner, in_repo_dir):
        result = runner.invoke(cli, ["forms", "encode", "Register", "--html"])

        assert result.exit_code == 0
        assert '<form id="Register"' in result.output
        assert 'data-val-equalto-other="*.Password"' in result.output

    def test_unknown_form(self, runner, in_repo_dir):
        result = runner.invoke(cli, ["forms", "encode", "Nope"])
        assert result.exit_code == 1
        assert "not found" in result.output


class TestFormsCheck:
    def test_valid(self, runner, in_repo_dir):
        result = runner.invoke(
            cli,
            ["forms", "check", "Register", "-d", "Password=password123", "-d", "ConfirmPassword=password123"],
        )
        assert result.exit_code == 0
        assert "Valid." in result.output

    def test_invalid(self, runner, in_repo_dir):
        result = runner.invoke(
            cli,
            ["--log-level", "error", "forms", "check", "RemoteValidation", "-d", "Username=admin", "-d", "Password=short"],
        )

        assert result.exit_code == 1
        assert json.loads(result.output) == {
            "Email": ["Email is required"],
            "Password": ["Password must be between 8 and 20 characters"],
            "Username": ["Username is already taken"],
        }

    def test_bad_pair(self, runner, in_repo_dir):
        result = runner.invoke(cli, ["forms", "check", "Register", "-d", "Password"])
        assert result.exit_code == 2
        assert "name=value" in result.output
