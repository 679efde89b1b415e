"""Tests for loading form metadata from YAML."""

from pathlib import Path

import pytest
import yaml

from veriform.metadata.loader import MetadataLoader, format_message, to_param_text
from veriform.validation.registry import CheckRegistry, RuleRegistry
from veriform.validation.types import ConfigurationError, MissingDependentFieldError
from veriform.validation.validators import register_builtin_rules, register_canned_checks

METADATA_DIR = Path(__file__).parent.parent / "metadata"


@pytest.fixture(autouse=True)
def setup_registries():
    RuleRegistry.clear()
    CheckRegistry.clear()
    register_builtin_rules()
    register_canned_checks()
    yield
    RuleRegistry.clear()
    CheckRegistry.clear()


@pytest.fixture
def loader():
    loader = MetadataLoader(METADATA_DIR)
    loader.load_all()
    return loader


def write_form(tmp_path: Path, data: dict, filename: str = "form.yaml") -> Path:
    forms_dir = tmp_path / "forms"
    forms_dir.mkdir(exist_ok=True)
    (forms_dir / filename).write_text(yaml.safe_dump(data))
    return tmp_path


class TestRepositoryMetadata:
    def test_all_forms_load(self, loader):
        assert set(loader.list_forms()) == {
            "ComprehensiveValidator",
            "ConditionalValidation",
            "PriceValidation",
            "Register",
            "RemoteValidation",
            "SimpleConditional",
        }

    def test_lookups_load(self, loader):
        assert loader.lookups["usernames"] == ["admin", "test", "user"]
        assert "test@example.com" in loader.lookups["emails"]

    def test_conditional_rule_resolved(self, loader):
        form = loader.get_form("ConditionalValidation")
        rules = form.rules_for("PhoneNumber")

        assert [r.kind for r in rules] == ["requiredIf", "phone"]
        assert rules[0].params == {"dependentproperty": "AcceptTerms", "expectedvalue": "true"}
        assert rules[0].invert is False

    def test_required_unless_is_inverted(self, loader):
        rule = loader.get_form("ConditionalValidation").rules_for("NewPassword")[0]
        assert rule.kind == "requiredUnless"
        assert rule.invert is True

    def test_default_messages_use_display_names(self, loader):
        rules = loader.get_form("SimpleConditional").rules_for("PhoneNumber")

        assert rules[0].message == (
            "Phone Number is required when Accept Terms and Conditions is true"
        )
        assert rules[1].message == "Phone Number must be a valid phone number"

    def test_no_expected_value_stays_absent(self, loader):
        rule = loader.get_form("SimpleConditional").rules_for("PhoneNumber")[0]
        assert rule.expected_value is None

    def test_display_names(self, loader):
        form = loader.get_form("ConditionalValidation")
        assert form.display_name == "Conditional Validation"
        assert form.get_field("State").display_name == "State"
        assert loader.get_form("Register").display_name == "Register"

    def test_options(self, loader):
        country = loader.get_form("ConditionalValidation").get_field("Country")
        assert [o.value for o in country.options] == ["", "USA", "Canada", "Mexico"]
        assert country.options[0].label == "-- Select --"

    def test_checks(self, loader):
        form = loader.get_form("RemoteValidation")
        assert [(c.name, c.field) for c in form.checks] == [
            ("unique", "Username"),
            ("unique", "Email"),
        ]

    def test_numeric_params_as_text(self, loader):
        rule = loader.get_form("PriceValidation").rules_for("Price")[1]
        assert rule.params == {"min": "0.01", "max": "999999.99"}


class TestResolveErrors:
    def test_unknown_rule_kind(self):
        loader = MetadataLoader(METADATA_DIR)
        with pytest.raises(ConfigurationError, match="Unknown rule kind"):
            loader.resolve_form({"form": "F", "fields": [{"name": "A", "rules": [{"kind": "zipCode"}]}]})

    def test_unknown_parameter(self):
        loader = MetadataLoader(METADATA_DIR)
        with pytest.raises(ConfigurationError, match="unknown parameter"):
            loader.resolve_form(
                {"form": "F", "fields": [{"name": "A", "rules": [{"kind": "length", "minimum": 3}]}]}
            )

    def test_conditional_needs_dependent_property(self):
        loader = MetadataLoader(METADATA_DIR)
        with pytest.raises(ConfigurationError, match="dependentProperty"):
            loader.resolve_form(
                {"form": "F", "fields": [{"name": "A", "rules": [{"kind": "requiredIf"}]}]}
            )

    def test_missing_dependent_field(self):
        loader = MetadataLoader(METADATA_DIR)
        with pytest.raises(MissingDependentFieldError):
            loader.resolve_form(
                {
                    "form": "F",
                    "fields": [
                        {"name": "A", "rules": [{"kind": "requiredIf", "dependentProperty": "Nope"}]}
                    ],
                }
            )

    def test_equal_to_unknown_field(self):
        loader = MetadataLoader(METADATA_DIR)
        with pytest.raises(ConfigurationError, match="unknown field"):
            loader.resolve_form(
                {"form": "F", "fields": [{"name": "A", "rules": [{"kind": "equalto", "other": "*.B"}]}]}
            )

    def test_check_on_unknown_field(self):
        loader = MetadataLoader(METADATA_DIR)
        with pytest.raises(ConfigurationError, match="unknown field"):
            loader.resolve_form(
                {
                    "form": "F",
                    "fields": [{"name": "A"}],
                    "checks": [{"name": "unique", "field": "B"}],
                }
            )

    def test_unknown_field_type(self):
        loader = MetadataLoader(METADATA_DIR)
        with pytest.raises(ConfigurationError, match="unknown type"):
            loader.resolve_form({"form": "F", "fields": [{"name": "A", "type": "date"}]})

    def test_duplicate_field(self):
        loader = MetadataLoader(METADATA_DIR)
        with pytest.raises(ConfigurationError, match="declared twice"):
            loader.resolve_form({"form": "F", "fields": [{"name": "A"}, {"name": "A"}]})

    def test_duplicate_form(self, tmp_path):
        write_form(tmp_path, {"form": "F", "fields": [{"name": "A"}]}, "one.yaml")
        write_form(tmp_path, {"form": "F", "fields": [{"name": "B"}]}, "two.yaml")
        loader = MetadataLoader(tmp_path)
        with pytest.raises(ConfigurationError, match="more than once"):
            loader.load_all()


class TestDuplicateRuleKinds:
    def test_later_declaration_wins_in_place(self, caplog):
        loader = MetadataLoader(METADATA_DIR)
        with caplog.at_level("WARNING"):
            form = loader.resolve_form(
                {
                    "form": "F",
                    "fields": [
                        {
                            "name": "A",
                            "rules": [
                                {"kind": "minlength", "min": 3, "message": "first"},
                                {"kind": "email", "message": "email"},
                                {"kind": "minLength", "min": 5, "message": "second"},
                            ],
                        }
                    ],
                }
            )

        rules = form.rules_for("A")
        assert [r.kind for r in rules] == ["minlength", "email"]
        assert rules[0].message == "second"
        assert rules[0].params == {"min": "5"}
        assert "declared twice" in caplog.text


class TestLoadFromDirectory:
    def test_empty_directory(self, tmp_path):
        loader = MetadataLoader(tmp_path)
        loader.load_all()
        assert loader.list_forms() == []
        assert loader.lookups == {}

    def test_files_without_form_key_skipped(self, tmp_path):
        write_form(tmp_path, {"notes": "not a form"})
        loader = MetadataLoader(tmp_path)
        loader.load_all()
        assert loader.list_forms() == []

    def test_null_expected_value_stays_absent(self, tmp_path):
        (tmp_path / "forms").mkdir()
        (tmp_path / "forms" / "employment.yaml").write_text(
            "form: Employment\n"
            "fields:\n"
            "  - name: Company\n"
            "  - name: Title\n"
            "    rules:\n"
            "      - kind: requiredIf\n"
            "        dependentProperty: Company\n"
            "        expectedValue: ~\n"
        )
        loader = MetadataLoader(tmp_path)
        loader.load_all()

        rule = loader.get_form("Employment").rules_for("Title")[0]

        assert "expectedvalue" not in rule.params
        assert rule.expected_value is None
        assert rule.message == "Title is required when Company is true"


class TestHelpers:
    def test_to_param_text(self):
        assert to_param_text(True) == "true"
        assert to_param_text(8) == "8"
        assert to_param_text(None) == ""
        assert to_param_text(["Email", "*.Username"]) == "Email,*.Username"

    def test_format_message(self):
        message = format_message(
            "{field} is required unless {dependentproperty} is {expectedvalue}",
            "New Password",
            {"dependentproperty": "HasExistingAccount"},
            {"HasExistingAccount": "I have an existing account"},
        )
        assert message == "New Password is required unless I have an existing account is true"

    def test_format_message_unknown_placeholder_empty(self):
        assert format_message("{field}{nothing}", "Name", {}, {}) == "Name"
