"""Tests for rule sets and grouped conditions."""

from __future__ import annotations

from dataclasses import dataclass

import pytest

from fluentcheck import ArgumentNullError, InlineValidator, Validator

# =============================================================================
# Test Fixtures
# =============================================================================


@dataclass
class Account:
    username: str = ""
    email: str = ""
    is_company: bool = False
    vat_number: str = ""
    is_active: bool = True


def _props(result):
    return [e.property_name for e in result.errors]


class AccountValidator(Validator[Account]):
    def rules(self):
        self.rule_for("username").not_empty()

        with self.rule_set(" signup ; admin,, "):
            self.rule_for("email").not_empty()

        with self.rule_set("admin"):
            self.rule_for("vat_number").not_empty()


# =============================================================================
# Rule sets
# =============================================================================


class TestRuleSetTagging:
    def test_names_split_and_trimmed(self):
        rules = list(AccountValidator())
        assert rules[0].rule_sets == []
        assert rules[1].rule_sets == ["signup", "admin"]
        assert rules[2].rule_sets == ["admin"]

    def test_list_of_names(self):
        validator = InlineValidator(Account)
        with validator.rule_set(["a", " b "]):
            validator.rule_for("email").not_empty()
        assert list(validator)[0].rule_sets == ["a", "b"]

    def test_innermost_scope_wins(self):
        validator = InlineValidator(Account)
        with validator.rule_set("outer"):
            validator.rule_for("username").not_empty()
            with validator.rule_set("inner"):
                validator.rule_for("email").not_empty()
            validator.rule_for("vat_number").not_empty()

        assert [r.rule_sets for r in validator] == [["outer"], ["inner"], ["outer"]]

    def test_callable_action_form(self):
        validator = InlineValidator(Account)
        validator.rule_set("signup", lambda: validator.rule_for("email").not_empty())
        assert list(validator)[0].rule_sets == ["signup"]

    def test_tags_apply_to_rules_added_before_an_error(self):
        validator = InlineValidator(Account)
        with pytest.raises(RuntimeError):
            with validator.rule_set("signup"):
                validator.rule_for("email").not_empty()
                raise RuntimeError("boom")
        assert list(validator)[0].rule_sets == ["signup"]
        assert validator._registry.subscriber_count == 0


class TestRuleSetSelection:
    def test_default_runs_untagged_only(self):
        assert _props(AccountValidator().validate(Account())) == ["username"]

    def test_named_rule_set(self):
        result = AccountValidator().validate(Account(), rule_set="signup")
        assert _props(result) == ["email"]

    def test_multiple_rule_sets(self):
        result = AccountValidator().validate(Account(), rule_set="default; admin")
        assert _props(result) == ["username", "email", "vat_number"]

    def test_all_rule_sets(self):
        result = AccountValidator().validate(Account(), rule_set="*")
        assert _props(result) == ["username", "email", "vat_number"]

    def test_unknown_rule_set_runs_nothing(self):
        assert AccountValidator().validate(Account(), rule_set="missing").ok

    def test_included_rules_inherit_tags(self):
        class AdminRules(Validator[Account]):
            def rules(self):
                self.rule_for("vat_number").not_empty()
                with self.rule_set("audit"):
                    self.rule_for("email").not_empty()

        validator = InlineValidator(Account)
        with validator.rule_set("admin"):
            validator.include(AdminRules())

        assert validator.validate(Account()).ok
        assert _props(validator.validate(Account(), rule_set="admin")) == ["vat_number"]
        assert _props(validator.validate(Account(), rule_set="admin,audit")) == [
            "vat_number",
            "email",
        ]


# =============================================================================
# Grouped conditions
# =============================================================================


class TestWhenUnless:
    def test_when_block(self):
        validator = InlineValidator(Account)
        with validator.when(lambda a: a.is_company):
            validator.rule_for("vat_number").not_empty()
            validator.rule_for("email").not_empty()

        assert validator.validate(Account()).ok
        assert _props(validator.validate(Account(is_company=True))) == [
            "vat_number",
            "email",
        ]

    def test_unless_block(self):
        validator = InlineValidator(Account)
        validator.unless(
            lambda a: a.is_company, lambda: validator.rule_for("username").not_empty()
        )
        assert not validator.validate(Account())
        assert validator.validate(Account(is_company=True))

    def test_rules_outside_block_unaffected(self):
        validator = InlineValidator(Account)
        with validator.when(lambda a: a.is_company):
            validator.rule_for("vat_number").not_empty()
        validator.rule_for("username").not_empty()
        assert _props(validator.validate(Account())) == ["username"]

    def test_nested_conditions_are_anded(self):
        validator = InlineValidator(Account)
        with validator.when(lambda a: a.is_company):
            with validator.unless(lambda a: not a.is_active):
                validator.rule_for("vat_number").not_empty()

        assert validator.validate(Account(is_company=True, is_active=False)).ok
        assert validator.validate(Account(is_company=False, is_active=True)).ok
        assert not validator.validate(Account(is_company=True, is_active=True))

    def test_group_condition_combines_with_rule_condition(self):
        validator = InlineValidator(Account)
        with validator.when(lambda a: a.is_company):
            validator.rule_for("vat_number").not_empty().when(lambda a: a.is_active)

        assert validator.validate(Account(is_company=True, is_active=False)).ok
        assert validator.validate(Account(is_company=False, is_active=True)).ok
        assert not validator.validate(Account(is_company=True, is_active=True))

    def test_condition_sees_whole_instance_in_collections(self):
        @dataclass
        class Team:
            members: list
            strict: bool = False

        validator = InlineValidator(Team)
        with validator.when(lambda t: t.strict):
            validator.rule_for_each("members").not_empty()

        assert validator.validate(Team(["", "x"])).ok
        assert _props(validator.validate(Team(["", "x"], strict=True))) == ["members[0]"]

    def test_condition_not_applied_when_block_raises(self):
        validator = InlineValidator(Account)
        with pytest.raises(RuntimeError):
            with validator.when(lambda a: False):
                validator.rule_for("username").not_empty()
                raise RuntimeError("boom")

        assert list(validator)[0].conditions == []
        assert validator._registry.subscriber_count == 0
        assert not validator.validate(Account())

    def test_condition_evaluated_per_call(self):
        calls = []
        validator = InlineValidator(Account)
        with validator.when(lambda a: calls.append(a.username) or True):
            validator.rule_for("username").not_empty()
            validator.rule_for("email").not_empty()

        validator.validate(Account("x"))
        validator.validate(Account("y"))
        assert calls == ["x", "x", "y", "y"]

    def test_included_rules_honour_group_condition(self):
        class VatRules(Validator[Account]):
            def rules(self):
                self.rule_for("vat_number").not_empty()

        validator = InlineValidator(Account)
        with validator.when(lambda a: a.is_company):
            validator.include(VatRules())

        assert validator.validate(Account()).ok
        assert not validator.validate(Account(is_company=True))


# =============================================================================
# Argument checks
# =============================================================================


class TestArgumentChecks:
    @pytest.mark.parametrize("names", [None, "", " ", " ,; ", []])
    def test_rule_set_requires_names(self, names):
        with pytest.raises(ArgumentNullError):
            InlineValidator().rule_set(names)

    @pytest.mark.parametrize("method", ["when", "unless", "when_async", "unless_async"])
    def test_conditions_require_predicate(self, method):
        validator = InlineValidator()
        with pytest.raises(ArgumentNullError):
            getattr(validator, method)(None)

    def test_argument_null_error_is_value_error(self):
        with pytest.raises(ValueError, match="names"):
            InlineValidator().rule_set(None)

    def test_non_callable_action(self):
        with pytest.raises(TypeError):
            InlineValidator().when(lambda a: True, "not a block")
