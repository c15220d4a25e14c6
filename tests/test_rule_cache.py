"""Tests for RuleCache and rule sharing between validator instances."""

from __future__ import annotations

import asyncio
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

import pytest

from fluentcheck import InvalidOperationError, RuleCache, Validator, use_options


@dataclass
class Customer:
    name: str = ""
    email: str | None = None


# =============================================================================
# RuleCache
# =============================================================================


class TestRuleCache:
    def test_builds_once_per_key(self):
        cache = RuleCache()
        calls = []

        def build():
            calls.append(1)
            return ["r1", "r2"]

        assert cache.get_or_build("k", build) == ["r1", "r2"]
        assert cache.get_or_build("k", build) == ["r1", "r2"]
        assert len(calls) == 1
        assert "k" in cache
        assert len(cache) == 1

    def test_callers_receive_copies(self):
        cache = RuleCache()
        first = cache.get_or_build("k", lambda: ["r1"])
        first.append("mutated")
        assert cache.get_or_build("k", lambda: ["other"]) == ["r1"]

    def test_keys_are_independent(self):
        cache = RuleCache()
        assert cache.get_or_build("a", lambda: [1]) == [1]
        assert cache.get_or_build("b", lambda: [2]) == [2]

    def test_failed_build_is_not_stored(self):
        cache = RuleCache()

        def broken():
            raise ValueError("bad rules")

        with pytest.raises(ValueError):
            cache.get_or_build("k", broken)
        assert "k" not in cache
        assert cache.get_or_build("k", lambda: [1]) == [1]

    def test_remove_and_clear(self):
        cache = RuleCache()
        cache.get_or_build("a", lambda: [1])
        cache.get_or_build("b", lambda: [2])
        cache.remove("a")
        assert "a" not in cache
        assert cache.try_get("b") == [2]
        cache.clear()
        assert len(cache) == 0
        assert cache.try_get("b") is None

    def test_concurrent_first_use_builds_exactly_once(self):
        cache = RuleCache()
        calls = []
        barrier = threading.Barrier(16)

        def build():
            calls.append(1)
            time.sleep(0.05)
            return [object()]

        def worker(_):
            barrier.wait()
            return cache.get_or_build("k", build)

        with ThreadPoolExecutor(max_workers=16) as pool:
            results = list(pool.map(worker, range(16)))

        assert len(calls) == 1
        assert all(r[0] is results[0][0] for r in results)


# =============================================================================
# Validators sharing cached rules
# =============================================================================


class TestValidatorRuleSharing:
    def test_instances_share_rule_identities(self):
        cache = RuleCache()

        class CustomerValidator(Validator[Customer]):
            def rules(self):
                self.rule_for("name").not_empty()
                self.rule_for("email").not_null()

        first = CustomerValidator(rule_cache=cache)
        second = CustomerValidator(rule_cache=cache)
        assert [id(r) for r in first] == [id(r) for r in second]
        assert CustomerValidator in cache

    def test_rules_method_runs_once_per_class(self):
        cache = RuleCache()
        calls = []

        class CustomerValidator(Validator[Customer]):
            def rules(self):
                calls.append(1)
                self.rule_for("name").not_empty()

        for _ in range(5):
            CustomerValidator(rule_cache=cache)
        assert len(calls) == 1

    def test_concurrent_construction_builds_once(self):
        cache = RuleCache()
        calls = []
        barrier = threading.Barrier(8)

        class SlowValidator(Validator[Customer]):
            def rules(self):
                calls.append(1)
                time.sleep(0.05)
                self.rule_for("name").not_empty()
                self.rule_for("email").not_null()

        def make(_):
            barrier.wait()
            return SlowValidator(rule_cache=cache)

        with ThreadPoolExecutor(max_workers=8) as pool:
            validators = list(pool.map(make, range(8)))

        assert len(calls) == 1
        expected = [id(r) for r in validators[0]]
        for v in validators:
            assert [id(r) for r in v] == expected
            assert len(v.validate(Customer()).errors) == 2

    def test_ad_hoc_rules_stay_local(self):
        cache = RuleCache()

        class CustomerValidator(Validator[Customer]):
            def rules(self):
                self.rule_for("name").not_empty()

        first = CustomerValidator(rule_cache=cache)
        first.rule_for("email").not_null()
        second = CustomerValidator(rule_cache=cache)

        assert len(list(first)) == 2
        assert len(list(second)) == 1
        assert len(cache.try_get(CustomerValidator)) == 1
        assert [e.property_name for e in first.validate(Customer()).errors] == [
            "name",
            "email",
        ]

    def test_cache_disabled_rebuilds_every_time(self):
        cache = RuleCache()
        calls = []

        class CustomerValidator(Validator[Customer]):
            def rules(self):
                calls.append(1)
                self.rule_for("name").not_empty()

        a = CustomerValidator(cache_enabled=False, rule_cache=cache)
        b = CustomerValidator(cache_enabled=False, rule_cache=cache)
        assert len(calls) == 2
        assert CustomerValidator not in cache
        assert list(a)[0] is not list(b)[0]
        assert not a.cache_enabled

    def test_cache_default_comes_from_options(self):
        cache = RuleCache()

        class CustomerValidator(Validator[Customer]):
            def rules(self):
                self.rule_for("name").not_empty()

        with use_options(rule_cache_enabled=False):
            CustomerValidator(rule_cache=cache)
        assert CustomerValidator not in cache

    def test_subclass_gets_its_own_entry(self):
        cache = RuleCache()

        class BaseValidator(Validator[Customer]):
            def rules(self):
                self.rule_for("name").not_empty()

        class StrictValidator(BaseValidator):
            def rules(self):
                super().rules()
                self.rule_for("email").not_null()

        assert len(list(BaseValidator(rule_cache=cache))) == 1
        assert len(list(StrictValidator(rule_cache=cache))) == 2
        assert len(cache) == 2


# =============================================================================
# Self-referencing validators
# =============================================================================


@dataclass
class Node:
    name: str = ""
    children: list[Node] = field(default_factory=list)


class TestSelfReference:
    def test_cache_rejects_reentrant_build_of_same_key(self):
        cache = RuleCache()

        def build():
            return cache.get_or_build("k", lambda: ["inner"])

        with pytest.raises(InvalidOperationError, match="set_validator"):
            cache.get_or_build("k", build)
        assert "k" not in cache
        # The key is usable again once the failed build unwinds
        assert cache.get_or_build("k", lambda: ["r1"]) == ["r1"]

    def test_constructing_itself_inside_rules_raises(self):
        cache = RuleCache()

        class NodeValidator(Validator[Node]):
            def rules(self):
                self.rule_for_each("children").set_validator(NodeValidator(rule_cache=cache))

        with pytest.raises(InvalidOperationError, match="NodeValidator.*set_validator"):
            NodeValidator(rule_cache=cache)
        assert NodeValidator not in cache

    def test_set_validator_self_validates_tree(self):
        cache = RuleCache()

        class NodeValidator(Validator[Node]):
            def rules(self):
                self.rule_for("name").not_empty()
                self.rule_for_each("children").set_validator(self)

        tree = Node(
            "root",
            [Node(""), Node("branch", [Node(""), Node("leaf")])],
        )
        validator = NodeValidator(rule_cache=cache)
        expected = ["children[0].name", "children[1].children[0].name"]

        result = validator.validate(tree)
        assert [f.property_name for f in result.errors] == expected

        result = asyncio.run(validator.validate_async(tree))
        assert [f.property_name for f in result.errors] == expected

    def test_recursive_validator_reports_no_async_work(self):
        class NodeValidator(Validator[Node]):
            def rules(self):
                self.rule_for_each("children").set_validator(self)

        validator = NodeValidator(cache_enabled=False)
        assert not any(rule.has_async_work for rule in validator)
        assert validator.validate(Node("root", [Node("a")])).is_valid
