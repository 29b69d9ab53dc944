"""
Rules: disjunctive clauses over package literals.

A literal is a signed pool id: ``+id`` means "install this package version",
``-id`` means "do not install it". A rule holds when at least one of its literals
is true. A multi-conflict rule is the compact "at most one of these" encoding: its
literals are all negative and it holds when at most one of them is false.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from package_resolver.models.package import Link, PackageVersion
    from package_resolver.models.request import RootRequirement


class RuleType(Enum):
    """Why a rule exists."""

    ROOT_REQUIRE = "root_require"
    FIXED = "fixed"
    PACKAGE_REQUIRES = "package_requires"
    PACKAGE_CONFLICT = "package_conflict"
    PACKAGE_SAME_NAME = "package_same_name"
    PACKAGE_ALIAS = "package_alias"
    PACKAGE_INVERSE_ALIAS = "package_inverse_alias"
    LEARNED = "learned"


@dataclass(eq=False)
class Rule:
    literals: tuple[int, ...]
    type: RuleType
    package: PackageVersion | None = None
    link: Link | None = None
    requirement: RootRequirement | None = None
    multi_conflict: bool = False
    disabled: bool = False
    id: int = -1
    # learned rules only: the rules they were derived from and the root-level
    # variables that were resolved away during derivation
    learned_from: tuple[Rule, ...] = field(default_factory=tuple)
    fixed_vars: tuple[int, ...] = field(default_factory=tuple)

    @property
    def is_assertion(self) -> bool:
        return len(self.literals) == 1

    @property
    def signature(self) -> tuple:
        return (tuple(sorted(self.literals)), self.multi_conflict)

    def __len__(self) -> int:
        return len(self.literals)

    def __repr__(self) -> str:
        kind = "multi_conflict " if self.multi_conflict else ""
        return f"Rule#{self.id}({kind}{self.type.value}: {list(self.literals)})"


class RuleSet:
    """Ordered, de-duplicated collection of rules; ids follow insertion order."""

    def __init__(self):
        self._rules: list[Rule] = []
        self._signatures: dict[tuple, Rule] = {}

    def add(self, rule: Rule) -> Rule | None:
        """Add ``rule`` unless an identical one exists. Returns the stored rule or None."""
        signature = rule.signature
        if rule.literals and signature in self._signatures:
            return None
        rule.id = len(self._rules)
        self._rules.append(rule)
        # empty rules each stand for a different unsatisfiable requirement
        if rule.literals:
            self._signatures[signature] = rule
        return rule

    def by_type(self, rule_type: RuleType) -> list[Rule]:
        return [rule for rule in self._rules if rule.type is rule_type]

    def __iter__(self):
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def __getitem__(self, index: int) -> Rule:
        return self._rules[index]
