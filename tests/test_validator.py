"""
Tests for the Validator execution engine.

Run with: pytest tests/test_validator.py -v
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Union

import pytest

from fluentcheck import (
    ArgumentNullError,
    InlineValidator,
    InvalidOperationError,
    ValidationContext,
    ValidationError,
    ValidationFailure,
    ValidationResult,
    Validator,
)

# =============================================================================
# Test Fixtures
# =============================================================================


@dataclass
class Customer:
    name: str = ""
    email: str | None = None
    age: int = 0
    tags: list[str] = field(default_factory=list)


@dataclass
class VipCustomer(Customer):
    tier: int = 1


@dataclass
class Product:
    sku: str = ""


class CustomerValidator(Validator[Customer]):
    def rules(self):
        self.rule_for("name").not_empty()
        self.rule_for("email").not_null().matches(r"@")
        self.rule_for("age").greater_than_or_equal(18)


# =============================================================================
# Basic execution
# =============================================================================


class TestValidate:
    """Test the synchronous entry point."""

    def test_valid_instance(self):
        result = CustomerValidator().validate(Customer("Ann", "ann@example.com", 30))
        assert result.ok
        assert result.is_valid
        assert bool(result) is True
        assert result.errors == []

    def test_failures_follow_rule_order(self):
        result = CustomerValidator().validate(Customer())
        assert [e.property_name for e in result.errors] == ["name", "email", "age"]
        assert not result

    def test_failure_details(self):
        result = CustomerValidator().validate(Customer("Ann", "nope", 30))
        (failure,) = result.errors
        assert failure.property_name == "email"
        assert failure.error_message == "'email' is not in the correct format."
        assert failure.attempted_value == "nope"
        assert failure.error_code == "matches"

    def test_each_call_returns_fresh_result(self):
        validator = CustomerValidator()
        first = validator.validate(Customer())
        second = validator.validate(Customer())
        assert first is not second
        assert first.errors is not second.errors
        assert len(first.errors) == len(second.errors) == 3

    def test_duplicate_failures_preserved(self):
        class DoubleValidator(Validator[Customer]):
            def rules(self):
                self.rule_for("name").not_empty()
                self.rule_for("name").not_empty()

        result = DoubleValidator().validate(Customer())
        assert [e.error_message for e in result.errors] == [
            "'name' must not be empty.",
            "'name' must not be empty.",
        ]

    def test_rules_for_nested_attribute_paths(self):
        @dataclass
        class Order:
            customer: Customer

        class OrderValidator(Validator[Order]):
            def rules(self):
                self.rule_for("customer.name").not_empty()

        result = OrderValidator().validate(Order(Customer()))
        assert result.errors[0].property_name == "customer.name"

    def test_mapping_instances(self):
        validator = InlineValidator(dict)
        validator.rule_for("name").not_empty()
        assert not validator.validate({"name": ""})
        assert validator.validate({"name": "Ann"})


class TestGuards:
    """Test argument and type guards."""

    def test_none_instance_raises(self):
        with pytest.raises(ArgumentNullError):
            CustomerValidator().validate(None)

    def test_argument_null_error_is_value_error(self):
        with pytest.raises(ValueError):
            CustomerValidator().validate(None)

    def test_type_mismatch_raises_before_any_rule(self):
        calls = []

        class TrackingValidator(Validator[Customer]):
            def rules(self):
                self.rule_for("name").must(lambda v: calls.append(v) or True)

        with pytest.raises(InvalidOperationError) as exc_info:
            TrackingValidator().validate(Product("X1"))
        assert "Product" in str(exc_info.value)
        assert "Customer" in str(exc_info.value)
        assert calls == []

    def test_subclass_instances_accepted(self):
        result = CustomerValidator().validate(VipCustomer("Ann", "a@b", 40))
        assert result.ok

    def test_validated_type_resolution(self):
        assert CustomerValidator.validated_type is Customer
        validator = CustomerValidator()
        assert validator.can_validate_instances_of_type(VipCustomer)
        assert not validator.can_validate_instances_of_type(Product)

    def test_any_declaration_accepts_every_type(self):
        class AnyValidator(Validator[Any]):
            def rules(self):
                self.rule_for("sku").not_empty()

        assert AnyValidator.validated_type is None
        assert AnyValidator().can_validate_instances_of_type(Product)
        assert not AnyValidator().validate(Product())
        assert AnyValidator().validate({"sku": "A-1"}).ok

    def test_object_declaration_accepts_every_type(self):
        class ObjectValidator(Validator[object]):
            def rules(self):
                pass

        assert ObjectValidator.validated_type is None
        assert ObjectValidator().validate(Product()).ok

    def test_optional_declaration_accepts_member_type(self):
        class OptionalCustomerValidator(Validator[Customer | None]):
            def rules(self):
                self.rule_for("name").not_empty()

        validator = OptionalCustomerValidator()
        assert [e.property_name for e in validator.validate(Customer()).errors] == ["name"]
        assert validator.validate(VipCustomer("Ann")).ok
        with pytest.raises(InvalidOperationError, match=r"'Customer \| NoneType'"):
            validator.validate(Product())

    def test_typing_optional_and_union(self):
        class OptionalValidator(Validator[Optional[Customer]]):
            def rules(self):
                pass

        class EitherValidator(Validator[Union[Customer, Product]]):
            def rules(self):
                pass

        assert OptionalValidator().validate(Customer()).ok
        assert EitherValidator().validate(Customer()).ok
        assert EitherValidator().validate(Product()).ok

    def test_inline_validator_union_type(self):
        validator = InlineValidator(Customer | Product)
        validator.rule_for(lambda x: x, "value").not_null()
        assert validator.validate(Product()).ok
        with pytest.raises(InvalidOperationError):
            validator.validate("text")

    def test_context_with_none_instance_raises_after_pre_validate(self):
        seen = []

        class HookedValidator(CustomerValidator):
            def pre_validate(self, context, result):
                seen.append(context)
                return True

        with pytest.raises(ArgumentNullError):
            HookedValidator().validate(ValidationContext(None))
        assert len(seen) == 1

    def test_context_instance_type_checked(self):
        with pytest.raises(InvalidOperationError):
            CustomerValidator().validate(ValidationContext(Product()))

    def test_rule_set_with_explicit_context_rejected(self):
        with pytest.raises(ValueError):
            CustomerValidator().validate(ValidationContext(Customer()), rule_set="a")

    def test_unnamed_lambda_selector_requires_name(self):
        validator = InlineValidator(Customer)
        validator.rule_for(lambda c: c.name).not_empty()
        with pytest.raises(InvalidOperationError, match="with_name"):
            validator.validate(Customer())

    def test_lambda_with_name(self):
        validator = InlineValidator(Customer)
        validator.rule_for(lambda c: c.name.strip()).with_name("trimmed name").not_empty()
        result = validator.validate(Customer(" "))
        assert result.errors[0].property_name == "trimmed name"
        assert result.errors[0].error_message == "'trimmed name' must not be empty."

    def test_named_function_selector(self):
        def full_name(c):
            return c.name

        validator = InlineValidator(Customer)
        validator.rule_for(full_name).not_empty()
        assert validator.validate(Customer()).errors[0].property_name == "full_name"

    def test_none_selector_raises(self):
        with pytest.raises(ArgumentNullError):
            InlineValidator().rule_for(None)


class TestPreValidate:
    """Test the pre_validate hook."""

    def test_false_short_circuits_with_hook_result(self):
        class SkippingValidator(CustomerValidator):
            def pre_validate(self, context, result):
                result.add(ValidationFailure("", "Customer is archived"))
                return False

        result = SkippingValidator().validate(Customer())
        assert [e.error_message for e in result.errors] == ["Customer is archived"]

    def test_false_with_empty_result(self):
        class SkippingValidator(CustomerValidator):
            def pre_validate(self, context, result):
                return False

        assert SkippingValidator().validate(Customer()).ok

    def test_false_skips_null_instance_check(self):
        class SkippingValidator(CustomerValidator):
            def pre_validate(self, context, result):
                return False

        assert SkippingValidator().validate(ValidationContext(None)).ok


class TestErrorPropagation:
    """User predicate errors are not converted into failures."""

    def test_predicate_exception_propagates(self):
        class BrokenValidator(Validator[Customer]):
            def rules(self):
                self.rule_for("name").must(lambda v: 1 / 0)

        with pytest.raises(ZeroDivisionError):
            BrokenValidator().validate(Customer())

    def test_missing_attribute_propagates(self):
        validator = InlineValidator(Customer)
        validator.rule_for("nickname").not_empty()
        with pytest.raises(AttributeError):
            validator.validate(Customer())


class TestValidateAndRaise:
    def test_raises_with_failures(self):
        with pytest.raises(ValidationError) as exc_info:
            CustomerValidator().validate_and_raise(Customer())
        assert len(exc_info.value.errors) == 3
        assert "name: 'name' must not be empty." in str(exc_info.value)

    def test_returns_result_when_valid(self):
        result = CustomerValidator().validate_and_raise(Customer("Ann", "a@b", 20))
        assert isinstance(result, ValidationResult)
        assert result.ok


class TestAdHocRules:
    def test_add_rule_after_construction(self):
        validator = CustomerValidator()
        validator.rule_for("tags").not_empty()
        result = validator.validate(Customer("Ann", "a@b", 20))
        assert [e.property_name for e in result.errors] == ["tags"]

    def test_iteration_lists_current_rules(self):
        validator = CustomerValidator()
        assert [r.property_name for r in validator] == ["name", "email", "age"]
        validator.rule_for("tags").not_empty()
        assert [r.property_name for r in validator][-1] == "tags"

    def test_add_none_rule_raises(self):
        with pytest.raises(ArgumentNullError):
            CustomerValidator().add_rule(None)

    def test_inline_validator_without_type_accepts_anything(self):
        validator = InlineValidator()
        validator.rule_for("sku").not_empty()
        assert not validator.validate(Product())
        assert validator.validated_type is None
