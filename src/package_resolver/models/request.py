"""
Request model: the problem handed to the solver.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from package_resolver.models.constraint import BaseConstraint, MatchAllConstraint
from package_resolver.models.package import PackageVersion


@dataclass(frozen=True)
class RootRequirement:
    """A requirement declared by the project itself (``require`` or ``require-dev``)."""

    name: str
    constraint: BaseConstraint
    pretty_constraint: str = "*"
    dev: bool = False

    def __str__(self) -> str:
        return f"{self.name} {self.pretty_constraint}"


@dataclass(frozen=True)
class RootAlias:
    """An inline alias such as ``"dev-main as 1.0.x-dev"``."""

    package: str
    version: str
    alias: str
    alias_normalized: str

    def to_dict(self) -> dict:
        return {
            "package": self.package,
            "version": self.version,
            "alias": self.alias,
            "alias_normalized": self.alias_normalized,
        }

    @classmethod
    def from_dict(cls, data: dict) -> RootAlias:
        return cls(
            package=data["package"],
            version=data["version"],
            alias=data["alias"],
            alias_normalized=data["alias_normalized"],
        )


@dataclass
class Request:
    """
    Root requirements, fixed packages and platform facts for one resolution run.

    ``fixed`` maps a package name to the version recorded by a previous lock. A fixed
    package stays at that version unless its name is in ``updatable`` (or
    ``update_all`` is set), in which case it is free to move; with ``minimal_changes``
    the locked version still wins when it satisfies the new constraints.
    """

    requires: list[RootRequirement] = field(default_factory=list)
    fixed: dict[str, PackageVersion] = field(default_factory=dict)
    updatable: set[str] = field(default_factory=set)
    update_all: bool = False
    platform: dict[str, str] = field(default_factory=dict)
    minimum_stability: str = "stable"
    stability_flags: dict[str, str] = field(default_factory=dict)
    prefer_stable: bool = False
    prefer_lowest: bool = False
    aliases: list[RootAlias] = field(default_factory=list)
    platform_overrides: dict[str, str] = field(default_factory=dict)
    ignore_platform_reqs: bool = False
    include_dev: bool = True
    minimal_changes: bool = False

    def require(
        self,
        name: str,
        constraint: BaseConstraint | None = None,
        pretty_constraint: str | None = None,
        dev: bool = False,
    ) -> RootRequirement:
        constraint = constraint or MatchAllConstraint()
        requirement = RootRequirement(
            name=name.lower(),
            constraint=constraint,
            pretty_constraint=pretty_constraint or constraint.pretty(),
            dev=dev,
        )
        self.requires.append(requirement)
        return requirement

    def fix(self, package: PackageVersion) -> None:
        self.fixed[package.name] = package

    def active_requires(self) -> list[RootRequirement]:
        """Root requirements that take part in this run, in declaration order."""
        return [r for r in self.requires if self.include_dev or not r.dev]

    def is_updatable(self, name: str) -> bool:
        return self.update_all or name.lower() in self.updatable

    def locked_fixed(self) -> list[PackageVersion]:
        """Fixed packages that must keep their exact version, sorted by name."""
        return [self.fixed[name] for name in sorted(self.fixed) if not self.is_updatable(name)]

    def preferred_versions(self) -> dict[str, str]:
        """
        Locked versions of updatable packages, consumed by the Policy as soft preferences.

        Only populated for minimal-change updates; a regular update looks for the newest
        candidates instead.
        """
        if not self.minimal_changes:
            return {}
        return {name: pkg.version for name, pkg in self.fixed.items() if self.is_updatable(name)}
