"""Canned imperative checks for Veriform.

These are ready-to-use server-side checks that ship with the framework.
They are declared in the `checks` section of form metadata and configured
via parameters.

Available checks:
- unique: Value must not already exist in a lookup collection
"""

from dataclasses import dataclass

from veriform.validation.registry import CheckRegistry
from veriform.validation.types import CheckContext, CheckDefinition, LookupService


# =============================================================================
# Unique Check
# =============================================================================


@dataclass
class UniqueParams:
    """Parameters for the unique check."""

    collection: str
    ignore_case: bool = True


class UniqueCheck:
    """Validates that a value is not already taken.

    Params:
        collection: Lookup collection to search (e.g. "usernames")
        ignoreCase: Compare case-insensitively (default: true)
    """

    default_message = "{field} is already taken"

    def __init__(self, params: UniqueParams, definition: CheckDefinition):
        self.params = params
        self.definition = definition

    async def run(self, ctx: CheckContext, lookup: LookupService) -> bool:
        value = ctx.value
        # Blank values are the required rules' concern
        if value is None or isinstance(value, bool) or str(value).strip() == "":
            return True

        exists = await lookup.exists(
            self.params.collection,
            str(value).strip(),
            ignore_case=self.params.ignore_case,
        )
        return not exists


def _unique_factory(definition: CheckDefinition) -> UniqueCheck:
    """Factory for creating UniqueCheck from definition."""
    params = UniqueParams(
        collection=definition.params.get("collection", definition.field),
        ignore_case=definition.params.get("ignoreCase", True),
    )
    return UniqueCheck(params=params, definition=definition)


# =============================================================================
# Registration
# =============================================================================


def register_canned_checks() -> None:
    """Register all canned checks with the CheckRegistry."""
    CheckRegistry.register_factory("unique", _unique_factory)
