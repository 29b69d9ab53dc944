"""
Dependency Resolver: install and update flows around the resolution core.

Runs the whole pipeline for one project:
- manifest -> Request
- repositories -> Pool (async, concurrent per name)
- Pool + Request -> Solver (worker thread, cancellable)
- previous lock + new decisions -> ordered operations
- decisions -> lock record (only after the solver succeeded)
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path

from package_resolver.core.config import ResolverConfig
from package_resolver.core.json_file import JsonFile
from package_resolver.core.locker import Locker
from package_resolver.core.policy import Policy
from package_resolver.core.pool import Pool, PoolBuilder
from package_resolver.core.solver import Solver, SolverResult
from package_resolver.core.transaction import TransactionBuilder
from package_resolver.exceptions import StaleLockWarning
from package_resolver.models.operation import Operation
from package_resolver.models.package import PackageVersion, is_platform_package
from package_resolver.models.request import Request
from package_resolver.parsers.constraint import parse_constraints
from package_resolver.parsers.manifest import Manifest, build_request
from package_resolver.repositories.base import Repository
from package_resolver.repositories.platform import PlatformRepository

logger = logging.getLogger(__name__)


@dataclass
class ResolutionResult:
    """Outcome of an install or update run."""

    packages: list[PackageVersion]
    dev_packages: list[PackageVersion]
    operations: list[Operation]
    lock_written: bool = False
    stale_lock: bool = False
    stats: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "packages": [{"name": p.pretty_name, "version": p.pretty_version} for p in self.packages],
            "packages-dev": [{"name": p.pretty_name, "version": p.pretty_version} for p in self.dev_packages],
            "operations": [op.to_dict() for op in self.operations],
            "lock_written": self.lock_written,
            "stale_lock": self.stale_lock,
            "stats": self.stats,
        }


class DependencyResolver:
    """
    Resolves a project's manifest against its repositories.

    Usage:
        resolver = DependencyResolver(Manifest.from_file(path), [JsonFileRepository("packages.json")], "project.lock")
        result = await resolver.update()
    """

    def __init__(
        self,
        manifest: Manifest,
        repositories: list[Repository],
        lock_path: Path | str,
        platform: PlatformRepository | None = None,
        config: ResolverConfig | None = None,
    ):
        self.manifest = manifest
        self.repositories = repositories
        self.config = config or ResolverConfig()
        self.platform = platform or PlatformRepository(manifest.platform_overrides)
        self.locker = Locker(JsonFile(lock_path), manifest.content)

    # ──────────────────────────────────────────────
    # Flows
    # ──────────────────────────────────────────────

    async def install(
        self,
        installed: list[PackageVersion] | None = None,
        dry_run: bool = False,
        strict: bool = False,
        include_dev: bool = True,
    ) -> ResolutionResult:
        """
        Install exactly what the lock records.

        Falls back to an update when there is no lock yet. A lock that no longer
        matches the manifest is reported (and is fatal with ``strict``).
        """
        if not self.locker.is_locked():
            logger.warning(f"[Lock] No lock file at {self.locker.json_file.path}, resolving from the manifest")
            return await self.update(dry_run=dry_run)

        stale = not self.locker.is_fresh()
        if stale:
            warning = StaleLockWarning(str(self.locker.json_file.path))
            if strict:
                raise warning
            logger.warning(f"[Lock] {warning}")

        locked = self.locker.get_locked_packages(with_dev=include_dev)
        request = self._locked_request(locked, include_dev)
        start = time.monotonic()
        # the lock is the only source of packages here
        pool = await PoolBuilder([], self.config).build(request)
        policy = Policy(request.prefer_stable, request.prefer_lowest)
        result = await self._solve(policy, pool, request)

        dev_names = set(self.locker.get_dev_package_names())
        packages = [pkg for pkg in result.installed() if pkg.name not in dev_names]
        dev_packages = [pkg for pkg in result.installed() if pkg.name in dev_names]
        operations = TransactionBuilder(installed or [], result.installed()).operations()

        return ResolutionResult(
            packages=packages,
            dev_packages=dev_packages,
            operations=operations,
            stale_lock=stale,
            stats=self._stats(pool, result, start),
        )

    async def update(
        self,
        packages: list[str] | None = None,
        with_dependencies: bool = False,
        dry_run: bool = False,
        prefer_lowest: bool = False,
        minimal_changes: bool = False,
    ) -> ResolutionResult:
        """
        Re-resolve the manifest and rewrite the lock.

        With ``packages`` only those names (and, with ``with_dependencies``, what they
        require) may change; every other locked package keeps its version.
        """
        start = time.monotonic()
        async with self.locker.locked():
            prior = self.locker.get_locked_packages(with_dev=True) if self.locker.is_locked() else []

            update_names = list(packages or [])
            if update_names and with_dependencies:
                update_names = self._with_dependencies(update_names, prior)

            request = build_request(
                self.manifest,
                platform=self.platform.facts(),
                locked=prior,
                update=update_names,
                update_all=not update_names,
                prefer_lowest=prefer_lowest,
                include_dev=True,
                ignore_platform_reqs=self.config.ignore_platform_reqs,
                minimal_changes=minimal_changes,
            )
            pool = await PoolBuilder(self.repositories, self.config).build(request)
            policy = Policy(request.prefer_stable, request.prefer_lowest, request.preferred_versions())
            result = await self._solve(policy, pool, request)

            installed = result.installed()
            non_dev, dev = self._split_dev(result, request)
            operations = TransactionBuilder(prior, installed).operations()

            lock_written = False
            if dry_run:
                logger.info("[Lock] Dry run, lock file left untouched")
            else:
                platform_reqs, platform_dev_reqs = self._platform_requirements()
                lock_written = self.locker.set_lock_data(
                    packages=non_dev,
                    dev_packages=dev,
                    platform_reqs=platform_reqs,
                    platform_dev_reqs=platform_dev_reqs,
                    aliases=request.aliases,
                    minimum_stability=request.minimum_stability,
                    stability_flags=request.stability_flags,
                    prefer_stable=request.prefer_stable,
                    prefer_lowest=request.prefer_lowest,
                    platform_overrides=request.platform_overrides,
                )

        return ResolutionResult(
            packages=non_dev,
            dev_packages=dev,
            operations=operations,
            lock_written=lock_written,
            stats=self._stats(pool, result, start),
        )

    def status(self) -> dict:
        """Lock presence and freshness without resolving anything."""
        locked = self.locker.is_locked()
        return {
            "lock_file": str(self.locker.json_file.path),
            "locked": locked,
            "fresh": self.locker.is_fresh() if locked else False,
            "content_hash": self.locker.content_hash,
        }

    # ──────────────────────────────────────────────
    # Helpers
    # ──────────────────────────────────────────────

    async def _solve(self, policy: Policy, pool: Pool, request: Request) -> SolverResult:
        cancel_event = threading.Event()
        solver = Solver(policy, pool, self.config, cancel_event)
        try:
            return await asyncio.to_thread(solver.solve, request)
        except asyncio.CancelledError:
            # the worker thread keeps running until it sees the event
            cancel_event.set()
            raise

    def _locked_request(self, locked: list[PackageVersion], include_dev: bool) -> Request:
        locker = self.locker
        request = Request(
            platform=self.platform.facts(),
            minimum_stability=locker.get_minimum_stability(),
            stability_flags=locker.get_stability_flags(),
            prefer_stable=bool(locker.get_prefer_stable()),
            prefer_lowest=bool(locker.get_prefer_lowest()),
            aliases=locker.get_aliases(),
            platform_overrides=locker.get_platform_overrides(),
            ignore_platform_reqs=self.config.ignore_platform_reqs,
            include_dev=include_dev,
        )
        if not self.config.ignore_platform_reqs:
            for name, pretty_constraint in locker.get_platform_requirements(include_dev).items():
                request.require(name, parse_constraints(pretty_constraint), pretty_constraint)
        for package in locked:
            request.fix(package)
        return request

    def _platform_requirements(self) -> tuple[dict[str, str], dict[str, str]]:
        platform = {name.lower(): str(c) for name, c in self.manifest.require.items() if is_platform_package(name)}
        platform_dev = {
            name.lower(): str(c) for name, c in self.manifest.require_dev.items() if is_platform_package(name)
        }
        return platform, platform_dev

    @staticmethod
    def _with_dependencies(names: list[str], prior: list[PackageVersion]) -> list[str]:
        by_name = {pkg.name: pkg for pkg in prior}
        result = {name.lower() for name in names}
        queue = deque(sorted(result))
        while queue:
            package = by_name.get(queue.popleft())
            if package is None:
                continue
            for target in package.requires:
                if target in by_name and target not in result:
                    result.add(target)
                    queue.append(target)
        return sorted(result)

    @staticmethod
    def _split_dev(result: SolverResult, request: Request) -> tuple[list[PackageVersion], list[PackageVersion]]:
        """Packages reachable from ``require`` are regular, the rest only serve ``require-dev``."""
        pool = result.pool
        installed_ids = {pool.id_of(pkg) for pkg in result.installed()} | {
            pool.id_of(pkg) for pkg in result.aliases()
        }

        reachable: set[int] = set()
        queue: deque[int] = deque()
        for requirement in request.requires:
            if requirement.dev:
                continue
            queue.extend(i for i in pool.what_provides(requirement.name, requirement.constraint) if i in installed_ids)

        while queue:
            package_id = queue.popleft()
            if package_id in reachable:
                continue
            reachable.add(package_id)
            package = pool.package_by_id(package_id)
            if package.is_alias:
                queue.append(pool.id_of(package.alias_of))
                continue
            for target, link in package.requires.items():
                queue.extend(i for i in pool.what_provides(target, link.constraint) if i in installed_ids)

        regular, dev = [], []
        for package in result.installed():
            (regular if pool.id_of(package) in reachable else dev).append(package)
        return regular, dev

    @staticmethod
    def _stats(pool: Pool, result: SolverResult, start: float) -> dict:
        return {
            "pool_size": len(pool),
            "rules": len(result.rules),
            "learned_rules": len(result.learned),
            "steps": result.steps,
            "solve_seconds": round(result.elapsed, 3),
            "total_seconds": round(time.monotonic() - start, 3),
        }
