"""
Rule generation: turns a pool and a request into clauses for the solver.
"""

import logging
from collections import deque

from package_resolver.core.pool import PLATFORM_REPOSITORY, Pool
from package_resolver.exceptions import InputInvariantViolation
from package_resolver.models.package import PackageVersion
from package_resolver.models.request import Request
from package_resolver.models.rule import Rule, RuleSet, RuleType

logger = logging.getLogger(__name__)


class RuleGenerator:
    """
    Generates the rule set for one resolution run.

    Only packages reachable from the root requirements, the fixed packages and the
    platform packages get rules. Output is fully determined by the pool and request:
    rules come out in the order root requirements, fixed packages, package rules
    (breadth first from the roots), conflicts, then one same-name rule per name.
    """

    def __init__(self, pool: Pool, request: Request):
        self.pool = pool
        self.request = request
        self.rules = RuleSet()
        self._added: dict[int, PackageVersion] = {}
        self._by_name: dict[str, list[int]] = {}

    def generate(self) -> RuleSet:
        queue: deque[int] = deque()

        for requirement in self.request.active_requires():
            providers = self.pool.what_provides(requirement.name, requirement.constraint)
            self.rules.add(Rule(tuple(providers), RuleType.ROOT_REQUIRE, requirement=requirement))
            queue.extend(providers)

        for package in self.request.locked_fixed():
            if package not in self.pool:
                raise InputInvariantViolation(
                    f"Locked package {package.pretty_name} {package.pretty_version} is not available "
                    "in the pool, the lock record may be corrupt",
                    package.name,
                )
            package_id = self.pool.id_of(package)
            self.rules.add(Rule((package_id,), RuleType.FIXED, package=package))
            queue.append(package_id)

        for package in self.pool:
            if package.repository == PLATFORM_REPOSITORY:
                package_id = self.pool.id_of(package)
                self.rules.add(Rule((package_id,), RuleType.FIXED, package=package))
                queue.append(package_id)

        # updatable locked packages stay reachable even when nothing requires them any more
        for name in sorted(self.request.fixed):
            package = self.request.fixed[name]
            if self.request.is_updatable(name) and package in self.pool:
                queue.append(self.pool.id_of(package))

        while queue:
            package_id = queue.popleft()
            if package_id in self._added:
                continue
            queue.extend(self._add_package_rules(package_id))

        self._add_conflict_rules()
        self._add_same_name_rules()

        logger.debug(f"[Rules] Generated {len(self.rules)} rules for {len(self._added)} reachable packages")
        return self.rules

    def _add_package_rules(self, package_id: int) -> list[int]:
        package = self.pool.package_by_id(package_id)
        self._added[package_id] = package
        discovered: list[int] = []

        if package.is_alias:
            base_id = self.pool.id_of(package.alias_of)
            self.rules.add(Rule((-package_id, base_id), RuleType.PACKAGE_ALIAS, package=package))
            self.rules.add(Rule((-base_id, package_id), RuleType.PACKAGE_INVERSE_ALIAS, package=package))
            discovered.append(base_id)
            # requirements are carried by the aliased package
            return discovered

        for name in package.names(include_provides=False):
            self._by_name.setdefault(name, []).append(package_id)

        for alias in self.pool.aliases_of(package):
            discovered.append(self.pool.id_of(alias))

        for target in package.requires:
            link = package.requires[target]
            providers = self.pool.what_provides(target, link.constraint)
            if package_id in providers:
                # a package providing its own requirement needs no rule
                continue
            self.rules.add(
                Rule((-package_id, *providers), RuleType.PACKAGE_REQUIRES, package=package, link=link)
            )
            discovered.extend(providers)
        return discovered

    def _add_conflict_rules(self) -> None:
        for package_id in sorted(self._added):
            package = self._added[package_id]
            if package.is_alias:
                continue
            for target in package.conflicts:
                if target not in self._by_name:
                    continue
                link = package.conflicts[target]
                for conflict_id in self.pool.what_provides(target, link.constraint, include_provides=False):
                    if conflict_id == package_id or conflict_id not in self._added:
                        continue
                    conflicting = self.pool.package_by_id(conflict_id)
                    if conflicting.is_alias and conflicting.alias_of == package:
                        continue
                    self.rules.add(
                        Rule((-package_id, -conflict_id), RuleType.PACKAGE_CONFLICT, package=package, link=link)
                    )

    def _add_same_name_rules(self) -> None:
        for name in sorted(self._by_name):
            package_ids = sorted(set(self._by_name[name]))
            if len(package_ids) < 2:
                continue
            literals = tuple(-package_id for package_id in package_ids)
            self.rules.add(
                Rule(
                    literals,
                    RuleType.PACKAGE_SAME_NAME,
                    package=self.pool.package_by_id(package_ids[0]),
                    multi_conflict=len(package_ids) > 2,
                )
            )
