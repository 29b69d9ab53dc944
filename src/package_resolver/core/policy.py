"""
Selection policy: which candidate the solver tries first.
"""

from __future__ import annotations

from functools import cmp_to_key
from typing import TYPE_CHECKING

from package_resolver.models.package import PackageVersion
from package_resolver.parsers.version import STABILITIES, compare_versions

if TYPE_CHECKING:
    from package_resolver.core.pool import Pool


class Policy:
    """
    Deterministic total order over candidate packages.

    Candidates are ranked by: locked version (for updatable packages), stability when
    ``prefer_stable`` is set, version (highest first unless ``prefer_lowest``),
    repository priority, then name and version so no two packages ever tie.
    """

    def __init__(
        self,
        prefer_stable: bool = False,
        prefer_lowest: bool = False,
        preferred_versions: dict[str, str] | None = None,
    ):
        self.prefer_stable = prefer_stable
        self.prefer_lowest = prefer_lowest
        self.preferred_versions = preferred_versions or {}

    @staticmethod
    def is_stability_acceptable(
        name: str, stability: str, minimum_stability: str, stability_flags: dict[str, str] | None = None
    ) -> bool:
        """True when ``stability`` is at least as stable as the floor that applies to ``name``."""
        floor = (stability_flags or {}).get(name, minimum_stability)
        return STABILITIES[stability] <= STABILITIES[floor]

    def compare_versions(self, a: PackageVersion, b: PackageVersion) -> int:
        """Negative when ``a`` should be tried before ``b``."""
        if a.name == b.name:
            preferred = self.preferred_versions.get(a.name)
            if preferred is not None:
                a_preferred, b_preferred = a.version == preferred, b.version == preferred
                if a_preferred != b_preferred:
                    return -1 if a_preferred else 1

        if self.prefer_stable and a.stability != b.stability:
            return STABILITIES[a.stability] - STABILITIES[b.stability]

        by_version = compare_versions(a.version, b.version)
        if by_version:
            return by_version if self.prefer_lowest else -by_version

        if a.priority != b.priority:
            return a.priority - b.priority
        if a.name != b.name:
            return -1 if a.name < b.name else 1
        # real package before its alias
        return a.is_alias - b.is_alias

    def select_preferred_packages(self, pool: Pool, literals: list[int], required_name: str | None = None) -> list[int]:
        """
        Order candidate literals, best first.

        Candidates are grouped by package name and each group is sorted with
        ``compare_versions``. Groups for ``required_name`` itself come first, then
        groups from the same vendor, then the rest in pool order.
        """
        groups: dict[str, list[PackageVersion]] = {}
        for literal in literals:
            package = pool.literal_to_package(literal)
            groups.setdefault(package.name, []).append(package)

        order = cmp_to_key(self.compare_versions)
        for name in groups:
            groups[name].sort(key=order)

        vendor = required_name.split("/", 1)[0] + "/" if required_name and "/" in required_name else None

        def group_rank(name: str) -> tuple:
            best = groups[name][0]
            return (
                name != required_name,
                not (vendor is not None and name.startswith(vendor)),
                pool.id_of(best),
            )

        result = []
        for name in sorted(groups, key=group_rank):
            result.extend(pool.id_of(package) for package in groups[name])
        return result
