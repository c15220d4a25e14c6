"""Validation failures and the aggregated result of a validation call."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from fluentcheck._errors import ValidationError
from fluentcheck._types import Severity


@dataclass
class ValidationFailure:
    """
    A single rejected value.

    Attributes:
        property_name: Full property path, e.g. ``address.line1`` or ``items[2]``
        error_message: Formatted message
        attempted_value: The value that was checked
        error_code: Identifier of the check (or a custom code)
        severity: Severity of the failure
        custom_state: Arbitrary data attached with ``with_state``
    """

    property_name: str
    error_message: str
    attempted_value: Any = None
    error_code: str | None = None
    severity: Severity = Severity.ERROR
    custom_state: Any = None

    def __str__(self) -> str:
        return self.error_message


@dataclass
class ValidationResult:
    """
    Result of running a validator.

    Failures are kept in rule order, then in step order within a rule.
    Duplicates are preserved.

    Example:
        result = validator.validate(customer)
        if not result:
            for failure in result.errors:
                print(failure.property_name, failure.error_message)
    """

    errors: list[ValidationFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def is_valid(self) -> bool:
        return self.ok

    def __bool__(self) -> bool:
        return self.ok

    def add(self, failure: ValidationFailure | None) -> None:
        """Append a failure; ``None`` entries are dropped."""
        if failure is not None:
            self.errors.append(failure)

    def extend(self, failures) -> None:
        for failure in failures:
            self.add(failure)

    def raise_if_invalid(self, exception_class: type = ValidationError) -> None:
        """Raise an exception if validation failed."""
        if self.ok:
            return
        if issubclass(exception_class, ValidationError):
            raise exception_class(self.errors)
        raise exception_class("; ".join(e.error_message for e in self.errors))

    def to_dict(self) -> dict[str, list[str]]:
        """Group error messages by property name, in first-seen order."""
        grouped: dict[str, list[str]] = {}
        for failure in self.errors:
            grouped.setdefault(failure.property_name, []).append(failure.error_message)
        return grouped

    def __str__(self) -> str:
        return "\n".join(e.error_message for e in self.errors)
