"""
CDCL solver over package rules.

The search alternates unit propagation (two watched literals per rule, every literal
watched for multi-conflict rules) with free choices ordered by the Policy. A
conflict is analysed to its first unique implication point; the learned rule is
added, the trail is truncated to the second-highest level of the rule, and the
learned literal is asserted. A conflict at level 0 means the request cannot be
satisfied.

Level 0 holds assertions (single-literal rules) and everything they imply. Free
choices start at level 1.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import defaultdict
from dataclasses import dataclass

from package_resolver.core.config import ResolverConfig
from package_resolver.core.policy import Policy
from package_resolver.core.pool import PLATFORM_REPOSITORY, Pool
from package_resolver.core.problem import Problem
from package_resolver.core.rule_generator import RuleGenerator
from package_resolver.exceptions import ResolutionCancelled, SearchBudgetExceeded, SolverProblemsError
from package_resolver.models.package import PackageVersion
from package_resolver.models.request import Request
from package_resolver.models.rule import Rule, RuleSet, RuleType

logger = logging.getLogger(__name__)


@dataclass
class Decision:
    """One assignment on the trail. ``reason`` is None for free choices."""

    literal: int
    level: int
    reason: Rule | None = None
    cause: Rule | None = None


class Decisions:
    """The solver trail plus per-variable value, level and trail position."""

    def __init__(self, pool_size: int):
        self.trail: list[Decision] = []
        self._values = [0] * (pool_size + 1)
        self._levels = [-1] * (pool_size + 1)
        self._positions = [-1] * (pool_size + 1)

    def decide(self, literal: int, level: int, reason: Rule | None = None, cause: Rule | None = None) -> None:
        var = abs(literal)
        if self._values[var]:
            raise RuntimeError(f"Variable {var} is already decided")
        self._values[var] = 1 if literal > 0 else -1
        self._levels[var] = level
        self._positions[var] = len(self.trail)
        self.trail.append(Decision(literal, level, reason, cause))

    def satisfied(self, literal: int) -> bool:
        value = self._values[abs(literal)]
        return value != 0 and (value > 0) == (literal > 0)

    def conflict(self, literal: int) -> bool:
        value = self._values[abs(literal)]
        return value != 0 and (value > 0) != (literal > 0)

    def undecided(self, literal: int) -> bool:
        return self._values[abs(literal)] == 0

    def installed(self, package_id: int) -> bool:
        return self._values[package_id] > 0

    def level_of(self, literal: int) -> int:
        return self._levels[abs(literal)]

    def position_of(self, literal: int) -> int:
        return self._positions[abs(literal)]

    def decision_of(self, literal: int) -> Decision:
        return self.trail[self._positions[abs(literal)]]

    def revert_to(self, level: int) -> list[int]:
        """Truncate the trail to ``level``; returns the variables that became undecided."""
        reverted = []
        while self.trail and self.trail[-1].level > level:
            decision = self.trail.pop()
            var = abs(decision.literal)
            self._values[var] = 0
            self._levels[var] = -1
            self._positions[var] = -1
            reverted.append(var)
        return reverted

    def __len__(self) -> int:
        return len(self.trail)


class _Watch:
    __slots__ = ("rule", "watch1", "watch2")

    def __init__(self, rule: Rule, watch1: int, watch2: int):
        self.rule = rule
        self.watch1 = watch1
        self.watch2 = watch2


@dataclass
class SolverResult:
    pool: Pool
    decisions: Decisions
    rules: RuleSet
    learned: list[Rule]
    steps: int
    elapsed: float

    def _decided(self) -> list[PackageVersion]:
        return [
            self.pool.package_by_id(abs(d.literal)) for d in self.decisions.trail if d.literal > 0
        ]

    def installed(self, include_platform: bool = False) -> list[PackageVersion]:
        """Packages decided true, aliases excluded, sorted by name."""
        packages = [
            pkg
            for pkg in self._decided()
            if not pkg.is_alias and (include_platform or pkg.repository != PLATFORM_REPOSITORY)
        ]
        return sorted(packages, key=lambda pkg: pkg.name)

    def aliases(self) -> list[PackageVersion]:
        return sorted((pkg for pkg in self._decided() if pkg.is_alias), key=lambda pkg: pkg.key)


class Solver:
    """
    Finds one installable set of packages for a request.

    ``cancel_event`` is checked between decision levels; setting it from another
    thread stops the search with ResolutionCancelled.
    """

    def __init__(
        self,
        policy: Policy,
        pool: Pool,
        config: ResolverConfig | None = None,
        cancel_event: threading.Event | None = None,
    ):
        self.policy = policy
        self.pool = pool
        self.config = config or ResolverConfig()
        self.cancel_event = cancel_event

    def solve(self, request: Request) -> SolverResult:
        """
        Raises:
            SolverProblemsError: If no assignment satisfies every rule.
            SearchBudgetExceeded: If the step or time budget runs out first.
            ResolutionCancelled: If the cancel event is set.
        """
        self.rules = RuleGenerator(self.pool, request).generate()
        self.decisions = Decisions(len(self.pool))
        self.learned: list[Rule] = []
        self._watches: dict[int, list[_Watch]] = defaultdict(list)
        self._propagate_index = 0
        self._steps = 0
        self._start = time.monotonic()
        self._scan_from = 1
        self._require_cursor = 0

        for rule in self.rules:
            if not rule.disabled and (rule.multi_conflict or not rule.is_assertion):
                self._watch(rule)

        self._make_assertion_decisions()
        conflict = self._propagate(0)
        if conflict is not None:
            self._raise_unsolvable(conflict)

        self._run_sat()

        elapsed = time.monotonic() - self._start
        logger.info(
            f"[Solver] Solved {len(self.rules)} rules in {self._steps} steps "
            f"with {len(self.learned)} learned rules ({elapsed:.2f}s)"
        )
        return SolverResult(
            pool=self.pool,
            decisions=self.decisions,
            rules=self.rules,
            learned=self.learned,
            steps=self._steps,
            elapsed=elapsed,
        )

    # ──────────────────────────────────────────────
    # Propagation
    # ──────────────────────────────────────────────

    def _watch(self, rule: Rule) -> None:
        if rule.multi_conflict:
            for literal in rule.literals:
                self._watches[literal].append(_Watch(rule, literal, literal))
            return

        watch1 = rule.literals[0]
        if rule.type is RuleType.LEARNED:
            # second watch on the most recently assigned literal so backjumps keep it valid
            watch2 = max(rule.literals[1:], key=self.decisions.position_of)
        else:
            watch2 = rule.literals[1]
        node = _Watch(rule, watch1, watch2)
        self._watches[watch1].append(node)
        self._watches[watch2].append(node)

    def _propagate(self, level: int) -> Rule | None:
        """Propagate every trail entry not yet processed; returns a conflicting rule, if any."""
        while self._propagate_index < len(self.decisions.trail):
            literal = self.decisions.trail[self._propagate_index].literal
            self._propagate_index += 1
            conflict = self._propagate_literal(-literal, level)
            if conflict is not None:
                return conflict
        return None

    def _propagate_literal(self, false_literal: int, level: int) -> Rule | None:
        decisions = self.decisions
        chain = self._watches.get(false_literal)
        if not chain:
            return None

        for node in list(chain):
            rule = node.rule
            if rule.multi_conflict:
                # one of these packages was just installed, none of the others may be
                for literal in rule.literals:
                    if literal == false_literal:
                        continue
                    if decisions.conflict(literal):
                        return rule
                    if decisions.undecided(literal):
                        decisions.decide(literal, level, rule)
                continue

            other = node.watch2 if node.watch1 == false_literal else node.watch1
            if decisions.satisfied(other):
                continue

            for candidate in rule.literals:
                if candidate == node.watch1 or candidate == node.watch2:
                    continue
                if not decisions.conflict(candidate):
                    if node.watch1 == false_literal:
                        node.watch1 = candidate
                    else:
                        node.watch2 = candidate
                    chain.remove(node)
                    self._watches[candidate].append(node)
                    break
            else:
                if decisions.conflict(other):
                    return rule
                decisions.decide(other, level, rule)
        return None

    def _make_assertion_decisions(self) -> None:
        empty = [rule for rule in self.rules if not rule.disabled and not rule.literals]
        if empty:
            raise SolverProblemsError(Problem(empty), self.pool)

        for rule in self.rules:
            if rule.disabled or rule.multi_conflict or not rule.is_assertion:
                continue
            literal = rule.literals[0]
            if self.decisions.undecided(literal):
                self.decisions.decide(literal, 0, rule)
            elif self.decisions.conflict(literal):
                self._raise_unsolvable(rule)

    # ──────────────────────────────────────────────
    # Search
    # ──────────────────────────────────────────────

    def _check_budget(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise ResolutionCancelled(f"Resolution cancelled after {self._steps} steps")
        elapsed = time.monotonic() - self._start
        if self._steps > self.config.max_steps:
            raise SearchBudgetExceeded(self._steps, elapsed, "step")
        if elapsed > self.config.max_seconds:
            raise SearchBudgetExceeded(self._steps, elapsed, "time")

    def _run_sat(self) -> None:
        root_rules = [rule for rule in self.rules.by_type(RuleType.ROOT_REQUIRE) if not rule.disabled]
        require_rules = [rule for rule in self.rules.by_type(RuleType.PACKAGE_REQUIRES) if not rule.disabled]
        level = 0

        while True:
            self._check_budget()

            choice = self._next_root_choice(root_rules) or self._next_require_choice(require_rules)
            if choice is not None:
                candidates, rule, required_name = choice
                ordered = self.policy.select_preferred_packages(self.pool, candidates, required_name)
                level = self._decide_and_propagate(level + 1, ordered[0], rule)
                continue

            var = self._next_undecided()
            if var is None:
                return
            # nothing requires it, leave it out
            level = self._decide_and_propagate(level + 1, -var, None)

    def _candidates(self, rule: Rule) -> list[int] | None:
        decisions = self.decisions
        if any(decisions.satisfied(literal) for literal in rule.literals):
            return None
        candidates = [literal for literal in rule.literals if literal > 0 and decisions.undecided(literal)]
        return candidates or None

    def _next_root_choice(self, rules: list[Rule]):
        for rule in rules:
            candidates = self._candidates(rule)
            if candidates:
                return candidates, rule, rule.requirement.name
        return None

    def _next_require_choice(self, rules: list[Rule]):
        count = len(rules)
        for offset in range(count):
            index = (self._require_cursor + offset) % count
            rule = rules[index]
            # literals[0] is the negated requiring package
            if not self.decisions.conflict(rule.literals[0]):
                continue
            candidates = self._candidates(rule)
            if candidates:
                self._require_cursor = index
                return candidates, rule, rule.link.target.lower()
        return None

    def _next_undecided(self) -> int | None:
        for var in range(self._scan_from, len(self.pool) + 1):
            if self.decisions.undecided(var):
                self._scan_from = var
                return var
        self._scan_from = len(self.pool) + 1
        return None

    def _decide_and_propagate(self, level: int, literal: int, cause: Rule | None) -> int:
        self._steps += 1
        self.decisions.decide(literal, level, None, cause)

        while True:
            conflict = self._propagate(level)
            if conflict is None:
                return level

            self._steps += 1
            self._check_budget()
            if level == 0:
                self._raise_unsolvable(conflict)

            learned_literal, new_level, learned_rule = self._analyze(conflict, level)
            reverted = self.decisions.revert_to(new_level)
            if reverted:
                self._scan_from = min(self._scan_from, min(reverted))
            self._propagate_index = len(self.decisions.trail)
            level = new_level

            learned_rule.id = len(self.rules) + len(self.learned)
            self.learned.append(learned_rule)
            if len(learned_rule.literals) > 1:
                self._watch(learned_rule)
            self.decisions.decide(learned_literal, level, learned_rule)

    def _analyze(self, conflict: Rule, level: int) -> tuple[int, int, Rule]:
        """First-UIP analysis. Returns the literal to assert, the backjump level and the learned rule."""
        decisions = self.decisions
        trail = decisions.trail
        seen: set[int] = set()
        learned: list[int] = []
        fixed_vars: list[int] = []
        sources: list[Rule] = [conflict]
        backjump_level = 0
        pending = 0
        rule = conflict
        limit = len(trail)
        index = len(trail) - 1

        while True:
            for literal in rule.literals:
                if not decisions.conflict(literal):
                    continue
                var = abs(literal)
                # only assignments made before the one being explained count
                if var in seen or decisions.position_of(var) >= limit:
                    continue
                seen.add(var)
                var_level = decisions.level_of(var)
                if var_level == 0:
                    fixed_vars.append(var)
                elif var_level == level:
                    pending += 1
                else:
                    learned.append(literal)
                    backjump_level = max(backjump_level, var_level)

            while abs(trail[index].literal) not in seen:
                index -= 1
            decision = trail[index]
            index -= 1

            pending -= 1
            if pending == 0:
                uip = -decision.literal
                break

            rule = decision.reason
            limit = decisions.position_of(decision.literal)
            sources.append(rule)

        learned_rule = Rule(
            (uip, *learned),
            RuleType.LEARNED,
            learned_from=tuple(sources),
            fixed_vars=tuple(fixed_vars),
        )
        return uip, backjump_level, learned_rule

    def _raise_unsolvable(self, conflict: Rule) -> None:
        """Collect the rules of the final conflict chain and raise SolverProblemsError."""
        decisions = self.decisions
        rules = [conflict]
        seen = {abs(literal) for literal in conflict.literals if decisions.conflict(literal)}
        seen.update(_fixed_vars(conflict))

        for decision in reversed(decisions.trail):
            var = abs(decision.literal)
            if var not in seen or decision.reason is None:
                continue
            reason = decision.reason
            rules.append(reason)
            position = decisions.position_of(var)
            for literal in reason.literals:
                other = abs(literal)
                if other != var and decisions.conflict(literal) and decisions.position_of(other) < position:
                    seen.add(other)
            seen.update(_fixed_vars(reason))

        problem = Problem(rules)
        logger.info(f"[Solver] Unsolvable after {self._steps} steps, {len(problem.rules)} rules involved")
        raise SolverProblemsError(problem, self.pool)


def _fixed_vars(rule: Rule) -> set[int]:
    """Level-0 variables a learned rule (transitively) depends on."""
    result: set[int] = set()
    stack = [rule]
    while stack:
        current = stack.pop()
        if current.type is RuleType.LEARNED:
            result.update(current.fixed_vars)
            stack.extend(current.learned_from)
    return result
