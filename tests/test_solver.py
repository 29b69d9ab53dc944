"""Tests for the CDCL solver and unsatisfiable-result explanations."""

import itertools
import threading
from dataclasses import replace
from types import SimpleNamespace

import pytest

from package_resolver.core.config import ResolverConfig
from package_resolver.core.policy import Policy
from package_resolver.core.solver import Decisions, Solver
from package_resolver.exceptions import ResolutionCancelled, SearchBudgetExceeded, SolverProblemsError
from package_resolver.models.request import Request
from package_resolver.models.rule import RuleType
from package_resolver.parsers.constraint import parse_constraints


def solve(pool, *requires, request: Request | None = None, policy: Policy | None = None, **solver_kwargs):
    request = request or Request()
    for name, constraint in requires:
        request.require(name, parse_constraints(constraint), constraint)
    return Solver(policy or Policy(), pool, **solver_kwargs).solve(request)


def installed(result) -> list[str]:
    return [str(pkg) for pkg in result.installed()]


# ═══════════════════════════════════════════
# Decisions Tests
# ═══════════════════════════════════════════


class TestDecisions:
    def test_decide_and_query(self):
        decisions = Decisions(3)
        decisions.decide(2, 1)
        decisions.decide(-3, 1)
        assert decisions.satisfied(2) and decisions.conflict(-2)
        assert decisions.satisfied(-3) and decisions.conflict(3)
        assert decisions.undecided(1)
        assert decisions.installed(2) and not decisions.installed(3)
        assert decisions.level_of(-3) == 1
        assert decisions.position_of(3) == 1

    def test_double_decision_rejected(self):
        decisions = Decisions(1)
        decisions.decide(1, 0)
        with pytest.raises(RuntimeError):
            decisions.decide(-1, 0)

    def test_revert_to_level(self):
        decisions = Decisions(3)
        decisions.decide(1, 0)
        decisions.decide(2, 1)
        decisions.decide(3, 2)
        assert decisions.revert_to(0) == [3, 2]
        assert len(decisions) == 1
        assert decisions.undecided(2) and decisions.undecided(3)


# ═══════════════════════════════════════════
# Satisfiable Tests
# ═══════════════════════════════════════════


class TestSolve:
    def test_picks_highest_matching_versions(self, pool_of):
        pool = pool_of(
            ("a/a", "1.0.0"),
            ("a/a", "1.1.0", {"require": {"b/b": "^1.0"}}),
            ("a/a", "2.0.0"),
            ("b/b", "1.0.0"),
        )
        result = solve(pool, ("a/a", "^1.0"))
        assert installed(result) == ["a/a 1.1.0", "b/b 1.0.0"]

    def test_prefer_lowest(self, pool_of):
        pool = pool_of(("a/a", "1.0.0"), ("a/a", "1.1.0"), ("a/a", "2.0.0"))
        result = solve(pool, ("a/a", "^1.0"), policy=Policy(prefer_lowest=True))
        assert installed(result) == ["a/a 1.0.0"]

    def test_unrequired_packages_not_installed(self, pool_of):
        pool = pool_of(("a/a", "1.0.0"), ("z/z", "1.0.0"))
        assert installed(solve(pool, ("a/a", "*"))) == ["a/a 1.0.0"]

    def test_empty_request(self, pool_of):
        pool = pool_of(("a/a", "1.0.0"))
        assert installed(solve(pool)) == []

    def test_conflict_resolved_by_propagation(self, pool_of):
        pool = pool_of(
            ("a/a", "1.0.0", {"require": {"b/b": "^1.0"}}),
            ("a/a", "2.0.0", {"require": {"b/b": "^2.0"}}),
            ("b/b", "1.0.0"),
            ("b/b", "2.0.0"),
            ("c/c", "1.0.0", {"conflict": {"b/b": ">=2.0"}}),
        )
        result = solve(pool, ("a/a", "*"), ("c/c", "*"))
        assert installed(result) == ["a/a 1.0.0", "b/b 1.0.0", "c/c 1.0.0"]

    def test_backtracks_and_learns(self, pool_of):
        pool = pool_of(
            ("a/a", "1.0.0", {"require": {"c/c": "1.0.0"}}),
            ("a/a", "2.0.0", {"require": {"c/c": "2.0.0"}}),
            ("b/b", "1.0.0", {"require": {"c/c": "1.0.0"}}),
            ("b/b", "1.1.0", {"require": {"c/c": "1.0.0"}}),
            ("c/c", "1.0.0"),
            ("c/c", "2.0.0"),
        )
        result = solve(pool, ("a/a", "*"), ("b/b", "*"))
        assert installed(result) == ["a/a 1.0.0", "b/b 1.1.0", "c/c 1.0.0"]
        assert len(result.learned) >= 1
        assert all(rule.type is RuleType.LEARNED for rule in result.learned)

    def test_many_versions_single_choice(self, pool_of):
        entries = [("b/b", f"1.{minor}.0") for minor in range(6)]
        pool = pool_of(("a/a", "1.0.0", {"require": {"b/b": "<1.3"}}), *entries)
        assert installed(solve(pool, ("a/a", "*"), ("b/b", "^1.1"))) == ["a/a 1.0.0", "b/b 1.2.0"]

    def test_replacing_package_satisfies_requirement(self, pool_of):
        pool = pool_of(("fork/a", "1.0.0", {"replace": {"a/a": "self.version"}}))
        assert installed(solve(pool, ("a/a", "^1.0"))) == ["fork/a 1.0.0"]

    def test_replacer_and_original_never_both_installed(self, pool_of):
        pool = pool_of(
            ("a/a", "1.0.0"),
            ("fork/a", "1.0.0", {"replace": {"a/a": "1.0.0"}}),
        )
        result = solve(pool, ("a/a", "*"), ("fork/a", "*"))
        assert installed(result) == ["fork/a 1.0.0"]

    def test_provided_virtual_package(self, pool_of):
        pool = pool_of(
            ("app/core", "1.0.0", {"require": {"psr/log-implementation": "^1.0"}}),
            ("acme/logger", "2.0.0", {"provide": {"psr/log-implementation": "1.0.0"}}),
        )
        assert installed(solve(pool, ("app/core", "*"))) == ["acme/logger 2.0.0", "app/core 1.0.0"]

    def test_locked_package_kept(self, pool_of, package):
        pool = pool_of(("a/a", "1.0.0"), ("a/a", "1.1.0"))
        request = Request()
        request.fix(package("a/a", "1.0.0"))
        assert installed(solve(pool, ("a/a", "^1.0"), request=request)) == ["a/a 1.0.0"]

    def test_updatable_locked_package_moves(self, pool_of, package):
        pool = pool_of(("a/a", "1.0.0"), ("a/a", "1.1.0"))
        request = Request(update_all=True)
        request.fix(package("a/a", "1.0.0"))
        assert installed(solve(pool, ("a/a", "^1.0"), request=request)) == ["a/a 1.1.0"]

    def test_platform_package_satisfies_requirement(self, pool_of, platform_package):
        pool = pool_of(
            platform_package("python", "3.11.0"),
            ("a/a", "2.0.0", {"require": {"python": ">=3.12"}}),
            ("a/a", "1.0.0", {"require": {"python": ">=3.8"}}),
        )
        result = solve(pool, ("a/a", "*"))
        assert installed(result) == ["a/a 1.0.0"]
        assert [str(pkg) for pkg in result.installed(include_platform=True)] == ["a/a 1.0.0", "python 3.11.0"]

    def test_alias_satisfies_versioned_requirement(self, pool_of, package):
        base = package("a/a", "dev-main")
        alias = replace(base, version="1.0.9999999.9999999-dev", pretty_version="1.0.x-dev", alias_of=base)
        pool = pool_of(base, alias, ("b/b", "1.0.0", {"require": {"a/a": "^1.0"}}))
        result = solve(pool, ("a/a", "dev-main"), ("b/b", "*"))
        assert installed(result) == ["a/a dev-main", "b/b 1.0.0"]
        assert [pkg.pretty_version for pkg in result.aliases()] == ["1.0.x-dev"]

    def test_deterministic(self, pool_of):
        entries = [
            ("a/a", "1.0.0", {"require": {"c/c": "1.0.0"}}),
            ("a/a", "2.0.0", {"require": {"c/c": "2.0.0"}}),
            ("b/b", "1.0.0", {"require": {"c/c": "1.0.0"}}),
            ("b/b", "1.1.0", {"require": {"c/c": "1.0.0"}}),
            ("c/c", "1.0.0"),
            ("c/c", "2.0.0"),
        ]
        results = [installed(solve(pool_of(*entries), ("a/a", "*"), ("b/b", "*"))) for _ in range(3)]
        results.append(installed(solve(pool_of(*reversed(entries)), ("a/a", "*"), ("b/b", "*"))))
        assert all(result == results[0] for result in results)


# ═══════════════════════════════════════════
# Unsatisfiable Tests
# ═══════════════════════════════════════════


class TestUnsolvable:
    def test_missing_package(self, pool_of):
        pool = pool_of(("a/a", "1.0.0"))
        with pytest.raises(SolverProblemsError) as exc_info:
            solve(pool, ("missing/pkg", "*"))
        assert exc_info.value.problem.explain(pool) == [
            "Root requires missing/pkg *, it could not be found in any version."
        ]

    def test_no_matching_version(self, pool_of):
        pool = pool_of(("a/a", "1.0.0"), ("a/a", "1.1.0"))
        with pytest.raises(SolverProblemsError) as exc_info:
            solve(pool, ("a/a", "^2.0"))
        assert exc_info.value.problem.explain(pool) == [
            "Root requires a/a ^2.0, found a/a[1.1.0, 1.0.0] but none match the constraint."
        ]

    def test_all_missing_requirements_reported(self, pool_of):
        pool = pool_of(("a/a", "1.0.0"))
        with pytest.raises(SolverProblemsError) as exc_info:
            solve(pool, ("x/x", "*"), ("a/a", "*"), ("y/y", "*"))
        assert [req.name for req in exc_info.value.problem.root_requirements()] == ["x/x", "y/y"]

    def test_missing_platform_package(self, pool_of):
        pool = pool_of(("a/a", "1.0.0"))
        with pytest.raises(SolverProblemsError) as exc_info:
            solve(pool, ("ext-magic", "*"))
        assert exc_info.value.problem.explain(pool) == ["Root requires ext-magic * but it is missing from the platform."]

    def test_conflicting_transitive_requirements(self, pool_of):
        pool = pool_of(
            ("a/a", "1.0.0", {"require": {"c/c": "^1.0"}}),
            ("b/b", "1.0.0", {"require": {"c/c": "^2.0"}}),
            ("c/c", "1.0.0"),
            ("c/c", "2.0.0"),
        )
        with pytest.raises(SolverProblemsError) as exc_info:
            solve(pool, ("a/a", "^1.0"), ("b/b", "^1.0"))

        error = exc_info.value
        assert error.problem.explain(pool) == [
            "Root requires a/a ^1.0 -> satisfiable by a/a[1.0.0].",
            "Root requires b/b ^1.0 -> satisfiable by b/b[1.0.0].",
            "a/a 1.0.0 requires c/c ^1.0 -> satisfiable by c/c[1.0.0].",
            "b/b 1.0.0 requires c/c ^2.0 -> satisfiable by c/c[2.0.0].",
            "Only one of these can be installed: c/c[2.0.0, 1.0.0].",
        ]
        assert "could not be resolved" in str(error)

    def test_root_rules_listed_first(self, pool_of):
        pool = pool_of(
            ("a/a", "1.0.0", {"conflict": {"b/b": "*"}}),
            ("a/a", "1.1.0", {"conflict": {"b/b": "*"}}),
            ("b/b", "1.0.0"),
        )
        with pytest.raises(SolverProblemsError) as exc_info:
            solve(pool, ("a/a", "*"), ("b/b", "*"))

        types = [rule.type for rule in exc_info.value.problem.rules]
        assert types[0] is RuleType.ROOT_REQUIRE
        assert RuleType.LEARNED not in types
        ranks = [0 if t is RuleType.ROOT_REQUIRE else 1 if t is RuleType.FIXED else 2 for t in types]
        assert ranks == sorted(ranks)

    def test_locked_version_conflicts_with_new_constraint(self, pool_of, package):
        pool = pool_of(("a/a", "1.0.0"), ("a/a", "2.0.0"))
        request = Request()
        request.fix(package("a/a", "1.0.0"))
        with pytest.raises(SolverProblemsError) as exc_info:
            solve(pool, ("a/a", "^2.0"), request=request)
        lines = exc_info.value.problem.explain(pool)
        assert lines[0] == "Root requires a/a ^2.0 -> satisfiable by a/a[2.0.0]."
        assert "a/a 1.0.0 is locked and not allowed to change." in lines

    def test_platform_version_too_low(self, pool_of, platform_package):
        pool = pool_of(platform_package("python", "3.7.0"), ("a/a", "1.0.0", {"require": {"python": ">=3.8"}}))
        with pytest.raises(SolverProblemsError) as exc_info:
            solve(pool, ("a/a", "*"))
        assert "a/a 1.0.0 requires python >=3.8 but the platform provides python[3.7.0]." in (
            exc_info.value.problem.explain(pool)
        )


# ═══════════════════════════════════════════
# Budget and Cancellation Tests
# ═══════════════════════════════════════════


class TestBudget:
    def _pool(self, pool_of):
        return pool_of(
            ("a/a", "1.0.0"),
            ("a/a", "2.0.0"),
            ("b/b", "1.0.0"),
            ("b/b", "2.0.0"),
            ("c/c", "1.0.0"),
            ("c/c", "2.0.0"),
        )

    def test_step_budget(self, pool_of):
        config = ResolverConfig(max_steps=1)
        with pytest.raises(SearchBudgetExceeded) as exc_info:
            solve(self._pool(pool_of), ("a/a", "*"), ("b/b", "*"), ("c/c", "*"), config=config)
        assert exc_info.value.reason == "step"
        assert exc_info.value.steps >= 2

    def test_budget_large_enough(self, pool_of):
        config = ResolverConfig(max_steps=100)
        result = solve(self._pool(pool_of), ("a/a", "*"), ("b/b", "*"), ("c/c", "*"), config=config)
        assert installed(result) == ["a/a 2.0.0", "b/b 2.0.0", "c/c 2.0.0"]
        assert result.steps <= 100

    def test_cancel_event(self, pool_of):
        event = threading.Event()
        event.set()
        with pytest.raises(ResolutionCancelled):
            solve(self._pool(pool_of), ("a/a", "*"), cancel_event=event)

    def test_time_budget(self, pool_of, monkeypatch):
        ticks = itertools.count(step=10.0)
        monkeypatch.setattr(
            "package_resolver.core.solver.time", SimpleNamespace(monotonic=lambda: next(ticks))
        )
        config = ResolverConfig(max_seconds=5.0)
        with pytest.raises(SearchBudgetExceeded) as exc_info:
            solve(self._pool(pool_of), ("a/a", "*"), config=config)
        assert exc_info.value.reason == "time"
        assert exc_info.value.elapsed >= 10.0
