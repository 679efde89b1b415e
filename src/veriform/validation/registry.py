"""Rule and check registries for Veriform.

Provides registration and lookup for:
- Rule kinds: synchronous checks evaluated identically by both evaluators,
  plus the encoder that turns a rule into client attributes
- Imperative checks: async server-side checks that need a data lookup
  (uniqueness and the like), also reachable through the remote endpoint
"""

import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping

from veriform.validation.types import (
    CheckContext,
    CheckDefinition,
    ImperativeCheck,
    LookupService,
    RuleDescriptor,
)

# (value as text, rule params, current form values) -> valid
RuleCheckFn = Callable[[str, Mapping[str, str], Mapping[str, Any]], bool]

# rule -> attribute name/value pairs (without the data-val presence marker)
RuleEncoderFn = Callable[[RuleDescriptor], dict[str, str]]

_NAME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9]*$")


def _check_name(name: str, what: str) -> None:
    if not _NAME_PATTERN.match(name):
        raise ValueError(
            f"{what} '{name}' must start with a letter and contain only letters and digits"
        )


@dataclass(frozen=True)
class RuleType:
    """A registered rule kind.

    Attributes:
        name: Canonical kind name (e.g. "requiredIf")
        check: Synchronous check, or None for kinds evaluated elsewhere
            (required, conditional and remote kinds)
        params: Parameter names the kind accepts
        message: Default message template ({field} plus parameter names)
        encoder: Custom attribute encoder, or None for the standard encoding
    """

    name: str
    check: RuleCheckFn | None = None
    params: tuple[str, ...] = ()
    message: str = "{field} is invalid"
    encoder: RuleEncoderFn | None = field(default=None, compare=False)


class RuleRegistry:
    """Registry for rule kinds.

    Kinds must be registered before form metadata that uses them is loaded.
    Built-in kinds are registered by `register_builtin_rules()` at startup;
    applications add their own with `register()` or the `@rule` decorator.

    Example:
        @rule("zipCode", message="{field} must be a ZIP code")
        def zip_code(value, params, values):
            return bool(ZIP_PATTERN.match(value))
    """

    _rules: dict[str, RuleType] = {}

    @classmethod
    def register(
        cls,
        name: str,
        check: RuleCheckFn | None = None,
        *,
        params: tuple[str, ...] | list[str] = (),
        message: str = "{field} is invalid",
        encoder: RuleEncoderFn | None = None,
    ) -> None:
        """Register a rule kind.

        Idempotent - re-registering the same name is a no-op.

        Kind and parameter names must be alphanumeric so the attribute
        encoding can be split without ambiguity.
        """
        _check_name(name, "Rule kind")
        for param in params:
            _check_name(param, "Rule parameter")
        if cls.is_registered(name):
            return
        cls._rules[name.lower()] = RuleType(
            name=name,
            check=check,
            params=tuple(p.lower() for p in params),
            message=message,
            encoder=encoder,
        )

    @classmethod
    def get(cls, name: str) -> RuleType:
        """Get a registered rule kind by name (case-insensitive).

        Raises:
            ValueError: If the kind is not registered
        """
        rule_type = cls._rules.get(name.lower())
        if rule_type is None:
            raise ValueError(
                f"Rule kind '{name}' is not registered. "
                "Available kinds: " + ", ".join(cls.list_registered())
            )
        return rule_type

    @classmethod
    def find(cls, name: str) -> RuleType | None:
        """Get a registered rule kind, or None."""
        return cls._rules.get(name.lower())

    @classmethod
    def canonical_name(cls, name: str) -> str:
        """Map an encoded (lowercase) kind name back to its registered spelling."""
        rule_type = cls.find(name)
        return rule_type.name if rule_type else name

    @classmethod
    def is_registered(cls, name: str) -> bool:
        return name.lower() in cls._rules

    @classmethod
    def list_registered(cls) -> list[str]:
        return sorted(r.name for r in cls._rules.values())

    @classmethod
    def clear(cls) -> None:
        """Clear all registrations. Primarily for testing."""
        cls._rules.clear()


def rule(
    name: str,
    *,
    params: tuple[str, ...] | list[str] = (),
    message: str = "{field} is invalid",
) -> Callable[[RuleCheckFn], RuleCheckFn]:
    """Decorator to register a custom rule check.

    Usage:
        @rule("between", params=("min", "max"), message="{field} must be between {min} and {max}")
        def between(value, params, values):
            ...
    """

    def decorator(fn: RuleCheckFn) -> RuleCheckFn:
        RuleRegistry.register(name, fn, params=params, message=message)
        return fn

    return decorator


# =============================================================================
# Imperative checks
# =============================================================================

CheckFactory = Callable[[CheckDefinition], ImperativeCheck]
CheckFn = Callable[[CheckContext, LookupService], Awaitable[bool]]


class CheckRegistry:
    """Registry for imperative (server-side) checks.

    Checks are referenced by name from the `checks` section of form metadata
    and must be registered at application startup.

    Example:
        @check("notReserved")
        async def not_reserved(ctx, lookup):
            return ctx.value.lower() not in RESERVED
    """

    _factories: dict[str, CheckFactory] = {}

    @classmethod
    def register_factory(cls, name: str, factory: CheckFactory) -> None:
        """Register a factory that builds a check from its definition.

        Idempotent - re-registering the same name is a no-op.
        """
        if name in cls._factories:
            return
        cls._factories[name] = factory

    @classmethod
    def create(cls, definition: CheckDefinition) -> ImperativeCheck:
        """Create a configured check from a definition.

        Raises:
            ValueError: If the check is not registered
        """
        factory = cls._factories.get(definition.name)
        if factory is None:
            raise ValueError(
                f"Check '{definition.name}' is not registered. "
                "Available checks: " + ", ".join(cls.list_registered())
            )
        return factory(definition)

    @classmethod
    def is_registered(cls, name: str) -> bool:
        return name in cls._factories

    @classmethod
    def list_registered(cls) -> list[str]:
        return sorted(cls._factories.keys())

    @classmethod
    def clear(cls) -> None:
        """Clear all registrations. Primarily for testing."""
        cls._factories.clear()


class FunctionCheck:
    """Adapts a plain async function to the ImperativeCheck protocol."""

    def __init__(self, fn: CheckFn, definition: CheckDefinition):
        self.fn = fn
        self.definition = definition

    async def run(self, ctx: CheckContext, lookup: LookupService) -> bool:
        return await self.fn(ctx, lookup)


def check(name: str) -> Callable[[CheckFn], CheckFn]:
    """Decorator to register an async function as an imperative check."""

    def decorator(fn: CheckFn) -> CheckFn:
        CheckRegistry.register_factory(name, lambda definition: FunctionCheck(fn, definition))
        return fn

    return decorator
