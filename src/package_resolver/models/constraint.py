"""
Version constraints: immutable predicates over normalized versions.

A single ``Constraint`` is an operator plus a normalized version. ``MultiConstraint``
combines constraints conjunctively (AND, ``>=1.0 <2.0``) or disjunctively (OR, ``^1.0 || ^2.0``).
"""

from __future__ import annotations

from dataclasses import dataclass, field

from package_resolver.parsers.version import is_branch, version_compare

OPERATORS = ("==", "!=", "<", "<=", ">", ">=")


class BaseConstraint:
    """Common interface of all constraint types."""

    pretty_string: str | None

    def matches_version(self, version: str) -> bool:
        raise NotImplementedError

    def intersects(self, other: BaseConstraint) -> bool:
        """Return True when some version could satisfy both constraints."""
        raise NotImplementedError

    def intersect(self, other: BaseConstraint) -> BaseConstraint:
        """Return the conjunction of both constraints."""
        if isinstance(other, MatchAllConstraint):
            return self
        if isinstance(other, MatchNoneConstraint):
            return other
        return MultiConstraint((self, other), conjunctive=True)

    def pretty(self) -> str:
        return self.pretty_string if self.pretty_string is not None else str(self)


@dataclass(frozen=True)
class Constraint(BaseConstraint):
    operator: str
    version: str
    pretty_string: str | None = field(default=None, compare=False)

    def __post_init__(self):
        if self.operator not in OPERATORS:
            raise ValueError(f"Invalid operator {self.operator!r}, expected one of {', '.join(OPERATORS)}")

    def matches_version(self, version: str) -> bool:
        if is_branch(self.version) or is_branch(version):
            # branches are only comparable by identity
            if self.operator == "==":
                return self.version == version
            if self.operator == "!=":
                return self.version != version
            return False
        return _apply(version_compare(version, self.version), self.operator)

    def intersects(self, other: BaseConstraint) -> bool:
        if not isinstance(other, Constraint):
            return other.intersects(self)

        is_eq, other_is_eq = self.operator == "==", other.operator == "=="
        is_ne, other_is_ne = self.operator == "!=", other.operator == "!="

        if is_ne or other_is_ne:
            if is_ne and not other_is_ne and not other_is_eq and is_branch(other.version):
                return False
            if other_is_ne and not is_ne and not is_eq and is_branch(self.version):
                return False
            if not is_eq and not other_is_eq:
                return True
            return self.version != other.version

        if is_branch(self.version) or is_branch(other.version):
            return is_eq and other_is_eq and self.version == other.version

        direction = self.operator.replace("=", "")
        other_direction = other.operator.replace("=", "")
        # two ranges opening towards the same side always overlap
        if not is_eq and direction == other_direction:
            return True

        if is_eq:
            return other.matches_version(self.version)
        if other_is_eq:
            return self.matches_version(other.version)

        # opposite half-open ranges, e.g. ">= 1.0" and "< 2.0"
        comparison = version_compare(self.version, other.version)
        if comparison == 0:
            return "=" in self.operator and "=" in other.operator
        if direction == ">":
            return comparison < 0
        return comparison > 0

    def __str__(self) -> str:
        return f"{self.operator} {self.version}"


@dataclass(frozen=True)
class MultiConstraint(BaseConstraint):
    constraints: tuple[BaseConstraint, ...]
    conjunctive: bool = True
    pretty_string: str | None = field(default=None, compare=False)

    def matches_version(self, version: str) -> bool:
        if self.conjunctive:
            return all(c.matches_version(version) for c in self.constraints)
        return any(c.matches_version(version) for c in self.constraints)

    def intersects(self, other: BaseConstraint) -> bool:
        if self.conjunctive:
            return all(c.intersects(other) for c in self.constraints)
        return any(c.intersects(other) for c in self.constraints)

    def __str__(self) -> str:
        glue = " " if self.conjunctive else " || "
        return "[" + glue.join(str(c) for c in self.constraints) + "]"


@dataclass(frozen=True)
class MatchAllConstraint(BaseConstraint):
    pretty_string: str | None = field(default=None, compare=False)

    def matches_version(self, version: str) -> bool:
        return True

    def intersects(self, other: BaseConstraint) -> bool:
        return not isinstance(other, MatchNoneConstraint)

    def intersect(self, other: BaseConstraint) -> BaseConstraint:
        return other

    def __str__(self) -> str:
        return "*"


@dataclass(frozen=True)
class MatchNoneConstraint(BaseConstraint):
    pretty_string: str | None = field(default=None, compare=False)

    def matches_version(self, version: str) -> bool:
        return False

    def intersects(self, other: BaseConstraint) -> bool:
        return False

    def intersect(self, other: BaseConstraint) -> BaseConstraint:
        return self

    def __str__(self) -> str:
        return "[]"


def _apply(comparison: int, operator: str) -> bool:
    match operator:
        case "==":
            return comparison == 0
        case "!=":
            return comparison != 0
        case "<":
            return comparison < 0
        case "<=":
            return comparison <= 0
        case ">":
            return comparison > 0
        case ">=":
            return comparison >= 0
    raise ValueError(f"Invalid operator {operator!r}")
