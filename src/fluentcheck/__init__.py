"""
Fluentcheck - Declarative Validation Rules

A Python library for defining validation rules with a fluent builder and
running them against objects, collecting every failure instead of stopping
at the first one. Rules can be grouped into rule sets, made conditional,
composed from other validators, and executed synchronously or
asynchronously with identical ordering.

Example:
    from fluentcheck import Validator

    class UserValidator(Validator[User]):
        def rules(self):
            self.rule_for("name").not_empty().max_length(50)
            self.rule_for("age").greater_than_or_equal(18)

            with self.when(lambda u: u.is_admin):
                self.rule_for("email").not_empty().matches(r"@example\\.com$")

            with self.rule_set("signup"):
                self.rule_for("password").min_length(12)

    result = UserValidator().validate(user)
    if not result:
        print(result.to_dict())

    # Async rules run one after another, checking for cancellation in between
    result = await UserValidator().validate_async(user, cancel=stop_event)
"""

from __future__ import annotations

__version__ = "0.1.0"
__author__ = "Matth Ingersoll"
__all__ = [
    # Core
    "Validator",
    "InlineValidator",
    "RuleBuilder",
    # Rules
    "ValidationRule",
    "PropertyRule",
    "CollectionPropertyRule",
    "IncludeRule",
    "RuleRegistry",
    # Checks
    "PropertyCheck",
    "AsyncPropertyCheck",
    "ChildValidatorCheck",
    "check",
    "check_args",
    # Caching
    "RuleCache",
    "default_rule_cache",
    # Context & selectors
    "ValidationContext",
    "PropertyChain",
    "ValidatorSelector",
    "DefaultValidatorSelector",
    "RuleSetValidatorSelector",
    "MemberNameValidatorSelector",
    "CompositeValidatorSelector",
    # Results
    "ValidationResult",
    "ValidationFailure",
    # Configuration
    "ValidatorOptions",
    "CascadeMode",
    "Severity",
    "ApplyConditionTo",
    "configure",
    "get_options",
    "use_options",
    # Errors
    "FluentCheckError",
    "ArgumentNullError",
    "InvalidOperationError",
    "OperationCancelledError",
    "ValidationError",
    # Tracing
    "TraceHook",
    "TraceConfig",
    "use_tracing",
    "PrintHook",
    "LoggingHook",
    "OpenTelemetryHook",
]

from fluentcheck._builder import RuleBuilder
from fluentcheck._cache import RuleCache, default_rule_cache
from fluentcheck._checks import (
    AsyncPropertyCheck,
    ChildValidatorCheck,
    PropertyCheck,
    check,
    check_args,
)
from fluentcheck._config import ValidatorOptions, configure, get_options, use_options
from fluentcheck._context import (
    CompositeValidatorSelector,
    DefaultValidatorSelector,
    MemberNameValidatorSelector,
    PropertyChain,
    RuleSetValidatorSelector,
    ValidationContext,
    ValidatorSelector,
)
from fluentcheck._errors import (
    ArgumentNullError,
    FluentCheckError,
    InvalidOperationError,
    OperationCancelledError,
    ValidationError,
)
from fluentcheck._registry import RuleRegistry
from fluentcheck._results import ValidationFailure, ValidationResult
from fluentcheck._rules import (
    CollectionPropertyRule,
    IncludeRule,
    PropertyRule,
    ValidationRule,
)
from fluentcheck._tracing import (
    LoggingHook,
    OpenTelemetryHook,
    PrintHook,
    TraceConfig,
    TraceHook,
    use_tracing,
)
from fluentcheck._types import ApplyConditionTo, CascadeMode, Severity
from fluentcheck._validator import InlineValidator, Validator
