"""Tests for rule generation."""

from dataclasses import replace

import pytest

from package_resolver.core.rule_generator import RuleGenerator
from package_resolver.exceptions import InputInvariantViolation
from package_resolver.models.request import Request
from package_resolver.models.rule import Rule, RuleSet, RuleType
from package_resolver.parsers.constraint import parse_constraints


def rules_for(pool, *requires, request: Request | None = None):
    request = request or Request()
    for name, constraint in requires:
        request.require(name, parse_constraints(constraint), constraint)
    return RuleGenerator(pool, request).generate()


def summary(rules):
    return [(rule.type, rule.literals) for rule in rules]


# ═══════════════════════════════════════════
# RuleSet Tests
# ═══════════════════════════════════════════


class TestRuleSet:
    def test_duplicates_are_dropped(self):
        rules = RuleSet()
        assert rules.add(Rule((-1, 2), RuleType.PACKAGE_REQUIRES)) is not None
        assert rules.add(Rule((2, -1), RuleType.PACKAGE_CONFLICT)) is None
        assert len(rules) == 1

    def test_empty_rules_are_always_kept(self):
        rules = RuleSet()
        rules.add(Rule((), RuleType.ROOT_REQUIRE))
        rules.add(Rule((), RuleType.ROOT_REQUIRE))
        assert [rule.id for rule in rules] == [0, 1]

    def test_by_type(self):
        rules = RuleSet()
        rules.add(Rule((1,), RuleType.FIXED))
        rules.add(Rule((-1, -2), RuleType.PACKAGE_CONFLICT))
        assert [rule.id for rule in rules.by_type(RuleType.PACKAGE_CONFLICT)] == [1]


# ═══════════════════════════════════════════
# RuleGenerator Tests
# ═══════════════════════════════════════════


class TestRuleGenerator:
    def test_requires_and_same_name_rules(self, pool_of):
        # ids: a 1.0.0=1, b 2.0.0=2, b 1.1.0=3, b 1.0.0=4, c 1.0.0=5
        pool = pool_of(
            ("a/a", "1.0.0", {"require": {"b/b": "^1.0"}}),
            ("b/b", "1.0.0"),
            ("b/b", "1.1.0"),
            ("b/b", "2.0.0"),
            ("c/c", "1.0.0"),
        )
        rules = rules_for(pool, ("a/a", "*"))
        assert summary(rules) == [
            (RuleType.ROOT_REQUIRE, (1,)),
            (RuleType.PACKAGE_REQUIRES, (-1, 3, 4)),
            (RuleType.PACKAGE_SAME_NAME, (-3, -4)),
        ]
        assert rules[0].is_assertion
        assert not rules[1].is_assertion
        assert rules[2].multi_conflict is False

    def test_more_than_two_versions_use_multi_conflict(self, pool_of):
        pool = pool_of(("b/b", "1.0.0"), ("b/b", "1.1.0"), ("b/b", "2.0.0"))
        rules = rules_for(pool, ("b/b", "*"))
        same_name = rules.by_type(RuleType.PACKAGE_SAME_NAME)
        assert len(same_name) == 1
        assert same_name[0].literals == (-1, -2, -3)
        assert same_name[0].multi_conflict is True

    def test_missing_requirements_produce_empty_rules(self, pool_of):
        pool = pool_of(("a/a", "1.0.0"))
        rules = rules_for(pool, ("x/x", "*"), ("y/y", "^1.0"), ("a/a", "^2.0"))
        root = rules.by_type(RuleType.ROOT_REQUIRE)
        assert [rule.literals for rule in root] == [(), (), ()]
        assert [rule.requirement.name for rule in root] == ["x/x", "y/y", "a/a"]

    def test_fixed_packages(self, pool_of, package):
        pool = pool_of(("a/a", "1.0.0"), ("a/a", "2.0.0"))
        request = Request()
        request.fix(package("a/a", "1.0.0"))
        rules = rules_for(pool, request=request)
        assert summary(rules) == [(RuleType.FIXED, (2,))]

    def test_updatable_fixed_package_gets_no_fixed_rule(self, pool_of, package):
        pool = pool_of(("a/a", "1.0.0"), ("a/a", "2.0.0"))
        request = Request(update_all=True)
        request.fix(package("a/a", "1.0.0"))
        rules = rules_for(pool, request=request)
        assert rules.by_type(RuleType.FIXED) == []

    def test_locked_package_missing_from_pool(self, pool_of, package):
        pool = pool_of(("a/a", "2.0.0"))
        request = Request()
        request.fix(package("a/a", "1.0.0"))
        with pytest.raises(InputInvariantViolation):
            rules_for(pool, request=request)

    def test_platform_packages_are_fixed(self, pool_of, platform_package):
        pool = pool_of(platform_package("python", "3.11.0"), ("a/a", "1.0.0", {"require": {"python": ">=3.8"}}))
        rules = rules_for(pool, ("a/a", "*"))
        assert summary(rules) == [
            (RuleType.ROOT_REQUIRE, (1,)),
            (RuleType.FIXED, (2,)),
            (RuleType.PACKAGE_REQUIRES, (-1, 2)),
        ]

    def test_conflict_rules(self, pool_of):
        pool = pool_of(
            ("a/a", "1.0.0", {"conflict": {"b/b": "<2.0"}}),
            ("b/b", "1.0.0"),
            ("b/b", "2.0.0"),
        )
        rules = rules_for(pool, ("a/a", "*"), ("b/b", "*"))
        conflicts = rules.by_type(RuleType.PACKAGE_CONFLICT)
        assert [rule.literals for rule in conflicts] == [(-1, -3)]
        assert conflicts[0].link.target == "b/b"

    def test_self_replacing_requirement_needs_no_rule(self, pool_of):
        pool = pool_of(("a/a", "1.0.0", {"require": {"b/b": "^1.0"}, "replace": {"b/b": "1.0.0"}}))
        rules = rules_for(pool, ("a/a", "*"))
        assert rules.by_type(RuleType.PACKAGE_REQUIRES) == []

    def test_replacer_shares_same_name_rule(self, pool_of):
        pool = pool_of(("b/b", "1.0.0"), ("fork/b", "1.0.0", {"replace": {"b/b": "1.0.0"}}))
        rules = rules_for(pool, ("b/b", "*"))
        same_name = rules.by_type(RuleType.PACKAGE_SAME_NAME)
        assert [rule.literals for rule in same_name] == [(-1, -2)]

    def test_alias_rules(self, pool_of, package):
        base = package("a/a", "dev-main")
        alias = replace(base, version="1.0.9999999.9999999-dev", pretty_version="1.0.x-dev", alias_of=base)
        # ids: alias=1, base=2, b=3
        pool = pool_of(base, alias, ("b/b", "1.0.0", {"require": {"a/a": "^1.0"}}))
        rules = rules_for(pool, ("b/b", "*"))
        assert summary(rules) == [
            (RuleType.ROOT_REQUIRE, (3,)),
            (RuleType.PACKAGE_REQUIRES, (-3, 1)),
            (RuleType.PACKAGE_ALIAS, (-1, 2)),
            (RuleType.PACKAGE_INVERSE_ALIAS, (-2, 1)),
        ]

    def test_generation_is_deterministic(self, pool_of):
        entries = [
            ("a/a", "1.0.0", {"require": {"b/b": "*", "c/c": "*"}}),
            ("b/b", "1.0.0", {"require": {"c/c": "^1.0"}}),
            ("b/b", "1.1.0"),
            ("c/c", "1.0.0"),
            ("c/c", "2.0.0", {"conflict": {"b/b": "*"}}),
        ]
        first = rules_for(pool_of(*entries), ("a/a", "*"))
        second = rules_for(pool_of(*reversed(entries)), ("a/a", "*"))
        assert summary(first) == summary(second)
