"""Built-in rule checks and canned imperative checks.

Rule checks are shared by both evaluators; canned checks run on the
server and back the remote check endpoint.
"""

from veriform.validation.validators.canned import (
    UniqueCheck,
    register_canned_checks,
)
from veriform.validation.validators.field_constraints import (
    luhn_valid,
    register_builtin_rules,
)

__all__ = [
    "UniqueCheck",
    "luhn_valid",
    "register_builtin_rules",
    "register_canned_checks",
]
