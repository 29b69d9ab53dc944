"""
Package model: one concrete version of a package as seen by the resolver.

A ``PackageVersion`` is identified by its lower-cased name and normalized version.
Relations to other packages (requires, conflicts, replaces, provides) are stored as
``Link`` objects keyed by target name.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from package_resolver.models.constraint import BaseConstraint
from package_resolver.parsers.version import parse_stability

# Runtime and extension pseudo-packages supplied by the platform, never by a repository.
PLATFORM_PACKAGE_REGEX = re.compile(
    r"^(?:php(?:-64bit|-ipv6|-zts|-debug)?|hhvm|python|composer(?:-(?:plugin|runtime)-api)?"
    r"|(?:ext|lib)-[a-z0-9](?:[_.-]?[a-z0-9]+)*)$",
    re.I,
)


def is_platform_package(name: str) -> bool:
    return bool(PLATFORM_PACKAGE_REGEX.match(name))


@dataclass(frozen=True)
class Link:
    """A relation from ``source`` to ``target`` restricted by ``constraint``."""

    source: str
    target: str
    constraint: BaseConstraint
    pretty_constraint: str
    description: str = "requires"

    def __str__(self) -> str:
        return f"{self.source} {self.description} {self.target} {self.pretty_constraint}"


@dataclass(frozen=True, eq=False)
class PackageVersion:
    """
    A single version of a package.

    Equality and hashing use ``(name, version)`` only; everything else is descriptive.
    ``metadata`` holds transport fields (dist, source, description, ...) in their
    original order and is written back to the lock untouched.
    """

    name: str
    version: str
    pretty_version: str
    pretty_name: str = ""
    requires: dict[str, Link] = field(default_factory=dict)
    require_dev: dict[str, Link] = field(default_factory=dict)
    conflicts: dict[str, Link] = field(default_factory=dict)
    replaces: dict[str, Link] = field(default_factory=dict)
    provides: dict[str, Link] = field(default_factory=dict)
    metadata: dict = field(default_factory=dict)
    repository: str = ""
    priority: int = 0
    alias_of: PackageVersion | None = None
    stability: str = field(init=False)

    def __post_init__(self):
        object.__setattr__(self, "name", self.name.lower())
        if not self.pretty_name:
            object.__setattr__(self, "pretty_name", self.name)
        object.__setattr__(self, "stability", parse_stability(self.version))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PackageVersion):
            return NotImplemented
        return self.name == other.name and self.version == other.version

    def __hash__(self) -> int:
        return hash((self.name, self.version))

    def __str__(self) -> str:
        return f"{self.pretty_name} {self.pretty_version}"

    def __repr__(self) -> str:
        return f"PackageVersion({self.name!r}, {self.version!r})"

    @property
    def key(self) -> tuple[str, str]:
        return (self.name, self.version)

    @property
    def is_alias(self) -> bool:
        return self.alias_of is not None

    def names(self, include_provides: bool = True) -> list[str]:
        """Every name this package can be installed as."""
        names = [self.name]
        names.extend(target for target in self.replaces if target not in names)
        if include_provides:
            names.extend(target for target in self.provides if target not in names)
        return names

    def platform_requirements(self) -> dict[str, Link]:
        return {target: link for target, link in self.requires.items() if is_platform_package(target)}
