"""Veriform validation system.

One set of declarative rules, evaluated in two places:
- Rule checks shared by both evaluators (required, email, range, ...)
- Conditional rules (requiredIf, requiredUnless) armed by another field
- Imperative checks (unique, custom) run by the server evaluator
- An attribute encoding that carries rules from server to client

Usage:
    from veriform.validation import register_builtin_rules, register_canned_checks
    from veriform.validation.services import ServerEvaluator

    # At application startup
    register_builtin_rules()
    register_canned_checks()
"""

from veriform.validation.conditions import is_armed, is_truthy, values_equal
from veriform.validation.encoding import decode_attributes, encode_field, encode_rule
from veriform.validation.engine import evaluate_rules
from veriform.validation.problems import (
    PROBLEM_TITLE,
    PROBLEM_TYPE,
    SubmitResponse,
    create_problem_response,
    create_success_response,
    parse_problem_details,
)
from veriform.validation.registry import CheckRegistry, RuleRegistry, check, rule
from veriform.validation.types import (
    CheckContext,
    CheckDefinition,
    ConfigurationError,
    FieldSnapshot,
    LookupService,
    MissingDependentFieldError,
    RuleDescriptor,
    RuleKind,
    StructuredErrorReport,
    VeriformError,
)
from veriform.validation.validators import register_builtin_rules, register_canned_checks

__all__ = [
    # Types
    "CheckContext",
    "CheckDefinition",
    "ConfigurationError",
    "FieldSnapshot",
    "LookupService",
    "MissingDependentFieldError",
    "RuleDescriptor",
    "RuleKind",
    "StructuredErrorReport",
    "VeriformError",
    # Registries
    "CheckRegistry",
    "RuleRegistry",
    "check",
    "rule",
    "register_builtin_rules",
    "register_canned_checks",
    # Evaluation
    "evaluate_rules",
    "is_armed",
    "is_truthy",
    "values_equal",
    # Encoding
    "decode_attributes",
    "encode_field",
    "encode_rule",
    # Responses
    "PROBLEM_TITLE",
    "PROBLEM_TYPE",
    "SubmitResponse",
    "create_problem_response",
    "create_success_response",
    "parse_problem_details",
]
