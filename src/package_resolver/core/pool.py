"""
Package pool: every candidate package version the solver may pick.

``Pool`` is immutable once built and assigns each package a stable integer id that
doubles as the solver's literal. ``PoolBuilder`` assembles a pool from repositories,
loading only the names reachable from the request.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import replace
from functools import cmp_to_key
from typing import TYPE_CHECKING, Iterable, Iterator

from package_resolver.core.config import ResolverConfig
from package_resolver.core.policy import Policy
from package_resolver.exceptions import ConstraintParseError, DataSourceError, InputInvariantViolation
from package_resolver.models.constraint import BaseConstraint
from package_resolver.models.package import PackageVersion, is_platform_package
from package_resolver.models.request import Request
from package_resolver.parsers.package import load_package
from package_resolver.parsers.version import compare_versions, normalize

if TYPE_CHECKING:
    from package_resolver.repositories.base import Repository

logger = logging.getLogger(__name__)

PLATFORM_REPOSITORY = "platform"
LOCK_REPOSITORY = "lock"


def _pool_order(a: tuple[int, PackageVersion], b: tuple[int, PackageVersion]) -> int:
    index_a, pkg_a = a
    index_b, pkg_b = b
    if pkg_a.name != pkg_b.name:
        return -1 if pkg_a.name < pkg_b.name else 1
    by_version = compare_versions(pkg_b.version, pkg_a.version)
    if by_version:
        return by_version
    if pkg_a.priority != pkg_b.priority:
        return pkg_a.priority - pkg_b.priority
    return index_a - index_b


class Pool:
    """
    Ordered, read-only package collection.

    Packages are sorted by name, then version descending, then repository priority,
    then insertion order; ids start at 1 in that order.
    """

    def __init__(self, packages: Iterable[PackageVersion]):
        ordered = sorted(enumerate(packages), key=cmp_to_key(_pool_order))
        self._packages: list[PackageVersion] = []
        self._ids: dict[PackageVersion, int] = {}
        self._by_name: dict[str, list[PackageVersion]] = {}
        self._by_relation: dict[str, list[PackageVersion]] = {}
        self._aliases: dict[PackageVersion, list[PackageVersion]] = {}
        self._cache: dict[tuple, list[int]] = {}

        for _, package in ordered:
            if package in self._ids:
                raise InputInvariantViolation(
                    f"Duplicate package {package.pretty_name} {package.pretty_version} in pool", package.name
                )
            self._packages.append(package)
            self._ids[package] = len(self._packages)
            self._by_name.setdefault(package.name, []).append(package)
            for target in package.names()[1:]:
                self._by_relation.setdefault(target, []).append(package)
            if package.is_alias:
                self._aliases.setdefault(package.alias_of, []).append(package)

    def __len__(self) -> int:
        return len(self._packages)

    def __iter__(self) -> Iterator[PackageVersion]:
        return iter(self._packages)

    def __contains__(self, package: PackageVersion) -> bool:
        return package in self._ids

    def id_of(self, package: PackageVersion) -> int:
        return self._ids[package]

    def package_by_id(self, package_id: int) -> PackageVersion:
        return self._packages[package_id - 1]

    def literal_to_package(self, literal: int) -> PackageVersion:
        return self.package_by_id(abs(literal))

    def literal_to_string(self, literal: int) -> str:
        return ("+" if literal > 0 else "-") + str(self.literal_to_package(literal))

    def exists(self, name: str) -> bool:
        return name.lower() in self._by_name

    def names(self) -> list[str]:
        return sorted(self._by_name)

    def query(self, name: str, constraint: BaseConstraint | None = None) -> list[PackageVersion]:
        """Packages called ``name`` matching ``constraint``, highest version first."""
        candidates = self._by_name.get(name.lower(), [])
        if constraint is None:
            return list(candidates)
        return [pkg for pkg in candidates if constraint.matches_version(pkg.version)]

    def aliases_of(self, package: PackageVersion) -> list[PackageVersion]:
        return list(self._aliases.get(package, []))

    def what_provides(
        self, name: str, constraint: BaseConstraint | None = None, include_provides: bool = True
    ) -> list[int]:
        """
        Ids of packages that satisfy ``name`` at ``constraint``.

        A package qualifies when it has that name and a matching version, or when it
        replaces (or, with ``include_provides``, provides) the name at a constraint that
        intersects ``constraint``.
        """
        name = name.lower()
        key = (name, str(constraint) if constraint is not None else None, include_provides)
        if key in self._cache:
            return self._cache[key]

        result = [self._ids[pkg] for pkg in self.query(name, constraint)]
        for package in self._by_relation.get(name, []):
            link = package.replaces.get(name)
            if link is None:
                if not include_provides:
                    continue
                link = package.provides[name]
            if constraint is None or link.constraint.intersects(constraint):
                result.append(self._ids[package])

        result = sorted(set(result))
        self._cache[key] = result
        return result


class PoolBuilder:
    """
    Builds a Pool by walking the names reachable from a request.

    Names are fetched wave by wave: all repositories are asked for every pending name
    concurrently, then the results are merged in sorted name order so concurrency
    never changes the resulting pool.
    """

    def __init__(self, repositories: list[Repository], config: ResolverConfig | None = None):
        self.repositories = repositories
        self.config = config or ResolverConfig()
        self.stats: dict = {"names": 0, "waves": 0, "records": 0, "skipped": 0, "filtered": 0}

    async def build(self, request: Request) -> Pool:
        start = time.monotonic()
        platform = self._platform_packages(request)
        platform_names = {pkg.name for pkg in platform}

        # name -> repository index -> records
        records: dict[str, dict[int, list[dict]]] = {}
        requested: set[str] = set()
        pending = {r.name for r in request.active_requires()} | set(request.fixed)
        pending |= {alias.package for alias in request.aliases}

        semaphore = asyncio.Semaphore(self.config.concurrency)
        accepted: dict[str, list[PackageVersion]] = {}
        while pending:
            wave = sorted(name for name in pending if not is_platform_package(name))
            requested |= pending
            self.stats["waves"] += 1
            logger.debug(f"[Pool] Wave {self.stats['waves']}: fetching {len(wave)} names")

            results = await asyncio.gather(*(self._fetch(name, semaphore) for name in wave))
            dirty: set[str] = set()
            for name, per_repository in zip(wave, results):
                for index, raw_records in enumerate(per_repository):
                    for raw in raw_records:
                        record_name = str(raw.get("name", "")).lower()
                        if not record_name:
                            self.stats["skipped"] += 1
                            logger.warning(f"[Pool] Skipping nameless record returned for {name}")
                            continue
                        records.setdefault(record_name, {}).setdefault(index, []).append(raw)
                        dirty.add(record_name)

            next_names: set[str] = set()
            for name in sorted(dirty):
                accepted[name] = self._load_name(name, records[name], request, platform_names)
                for package in accepted[name]:
                    next_names.update(package.requires)
            pending = {name for name in next_names if name not in requested}

        packages = [pkg for name in sorted(accepted) for pkg in accepted[name]]
        packages.extend(platform)
        packages = self._seed_fixed(packages, request)
        packages.extend(self._alias_packages(packages, request))

        pool = Pool(packages)
        self.stats["names"] = len(requested)
        logger.info(
            f"[Pool] Built pool of {len(pool)} package versions from {len(requested)} names "
            f"in {self.stats['waves']} waves ({time.monotonic() - start:.2f}s)"
        )
        return pool

    async def _fetch(self, name: str, semaphore: asyncio.Semaphore) -> list[list[dict]]:
        results = []
        for repository in self.repositories:
            async with semaphore:
                try:
                    results.append(await repository.fetch_versions(name))
                except DataSourceError:
                    raise
                except Exception as e:
                    raise DataSourceError(f"Failed to fetch {name}: {e}", source=repository.name) from e
        return results

    def _load_name(
        self, name: str, per_repository: dict[int, list[dict]], request: Request, platform_names: set[str]
    ) -> list[PackageVersion]:
        """Normalize the records of the first repository serving ``name`` and apply filters."""
        index = min(per_repository)
        repository = self.repositories[index]
        accepted = []
        seen: set[str] = set()
        for raw in per_repository[index]:
            try:
                package = load_package(raw, repository=repository.name, priority=index)
            except (InputInvariantViolation, ConstraintParseError) as e:
                self.stats["skipped"] += 1
                logger.warning(f"[Pool] Skipping malformed record from {repository.name}: {e}")
                continue
            # the same record may come back for several fetched names
            if package.version in seen:
                continue
            seen.add(package.version)
            self.stats["records"] += 1
            package = self._filter(package, request, platform_names)
            if package is not None:
                accepted.append(package)
        return accepted

    def _filter(self, package: PackageVersion, request: Request, platform_names: set[str]) -> PackageVersion | None:
        fixed = request.fixed.get(package.name)
        if fixed is not None and fixed.version == package.version:
            return self._strip_platform(package) if request.ignore_platform_reqs else package

        if request.ignore_platform_reqs:
            package = self._strip_platform(package)
        else:
            missing = [target for target in package.platform_requirements() if target not in platform_names]
            if missing:
                self.stats["filtered"] += 1
                logger.debug(f"[Pool] {package} needs {', '.join(missing)} which the platform lacks")
                return None

        acceptable = any(
            Policy.is_stability_acceptable(
                name, package.stability, request.minimum_stability, request.stability_flags
            )
            for name in package.names()
        )
        if not acceptable:
            self.stats["filtered"] += 1
            return None
        return package

    @staticmethod
    def _strip_platform(package: PackageVersion) -> PackageVersion:
        platform = package.platform_requirements()
        if not platform:
            return package
        requires = {target: link for target, link in package.requires.items() if target not in platform}
        return replace(package, requires=requires)

    @staticmethod
    def _platform_packages(request: Request) -> list[PackageVersion]:
        facts = dict(request.platform)
        for name, version in request.platform_overrides.items():
            if version is False:
                facts.pop(name.lower(), None)
            else:
                facts[name.lower()] = version
        packages = []
        for name in sorted(facts):
            pretty_version = str(facts[name])
            try:
                version = normalize(pretty_version)
            except ConstraintParseError as e:
                raise DataSourceError(f"Cannot determine version of {name}: {e}", source=PLATFORM_REPOSITORY) from e
            packages.append(
                PackageVersion(
                    name=name,
                    version=version,
                    pretty_version=pretty_version,
                    repository=PLATFORM_REPOSITORY,
                    priority=-1,
                )
            )
        return packages

    @staticmethod
    def _seed_fixed(packages: list[PackageVersion], request: Request) -> list[PackageVersion]:
        present = set(packages)
        for name in sorted(request.fixed):
            package = request.fixed[name]
            if package not in present:
                logger.info(f"[Pool] {package} is no longer served by any repository, using the locked copy")
                seeded = replace(package, repository=LOCK_REPOSITORY, priority=len(packages))
                if request.ignore_platform_reqs:
                    seeded = PoolBuilder._strip_platform(seeded)
                packages.append(seeded)
                present.add(seeded)
        return packages

    @staticmethod
    def _alias_packages(packages: list[PackageVersion], request: Request) -> list[PackageVersion]:
        by_key = {pkg.key: pkg for pkg in packages}
        aliases = []
        for alias in request.aliases:
            base = by_key.get((alias.package, alias.version))
            if base is None:
                logger.debug(f"[Pool] Alias target {alias.package} {alias.version} not available")
                continue
            if (alias.package, alias.alias_normalized) in by_key:
                continue
            aliases.append(
                replace(
                    base,
                    version=alias.alias_normalized,
                    pretty_version=alias.alias,
                    metadata={},
                    alias_of=base,
                )
            )
        return aliases
