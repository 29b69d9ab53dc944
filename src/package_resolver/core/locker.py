"""
Lock store: reads and writes the lock record and checks its freshness.
"""

from __future__ import annotations

import hashlib
import json
import logging
from contextlib import asynccontextmanager

from package_resolver.core.json_file import JsonFile
from package_resolver.exceptions import InputInvariantViolation, InvalidPackageError, LockNotFoundError
from package_resolver.models.lock import LockRecord
from package_resolver.models.package import PackageVersion
from package_resolver.models.request import RootAlias
from package_resolver.parsers.package import dump_package, load_package
from package_resolver.parsers.version import STABILITIES

logger = logging.getLogger(__name__)

# Manifest keys that influence resolution; everything else may change without staling the lock.
RELEVANT_KEYS = (
    "name",
    "version",
    "require",
    "require-dev",
    "conflict",
    "replace",
    "provide",
    "minimum-stability",
    "prefer-stable",
    "repositories",
    "extra",
)

_STABILITY_NAMES = {code: name for name, code in STABILITIES.items()}


class Locker:
    """
    Lock record for one project.

    ``manifest_content`` is the raw manifest text the lock is (or will be) derived
    from; it is only used for hashing.
    """

    def __init__(self, json_file: JsonFile, manifest_content: str):
        self.json_file = json_file
        self.manifest_content = manifest_content
        self.hash = hashlib.md5(manifest_content.strip(" \t\n\r\0\x0b").encode("utf-8")).hexdigest()
        self.content_hash = self.get_content_hash(manifest_content)
        self._lock_data: dict | None = None

    @staticmethod
    def get_content_hash(manifest_content: str) -> str:
        """md5 of the resolution-relevant manifest keys, encoded compactly with sorted keys."""
        content = json.loads(manifest_content)
        relevant = {key: content[key] for key in RELEVANT_KEYS if key in content}
        platform = (content.get("config") or {}).get("platform")
        if platform:
            relevant["config"] = {"platform": platform}
        encoded = json.dumps(dict(sorted(relevant.items())), separators=(",", ":"))
        # match the escaped-slash encoding existing lock files were hashed with
        encoded = encoded.replace("/", "\\/")
        return hashlib.md5(encoded.encode("utf-8")).hexdigest()

    def is_locked(self) -> bool:
        if not self.json_file.exists():
            return False
        data = self.get_lock_data()
        return "packages" in data

    def is_fresh(self) -> bool:
        lock = self.get_lock_data()
        if "content-hash" in lock:
            return self.content_hash == lock["content-hash"]
        if "hash" in lock:
            return self.hash == lock["hash"]
        return False

    def get_lock_data(self) -> dict:
        if self._lock_data is not None:
            return self._lock_data
        if not self.json_file.exists():
            raise LockNotFoundError(f"No lock file present at {self.json_file.path}")
        self._lock_data = self.json_file.read()
        return self._lock_data

    def get_locked_packages(self, with_dev: bool = False) -> list[PackageVersion]:
        """
        Return every locked package, optionally including the dev section.

        Raises:
            LockNotFoundError: If no lock record exists.
            InvalidPackageError: If any entry lacks a name or a version. The whole
                record is validated before anything is returned.
        """
        if not self.is_locked():
            raise LockNotFoundError("Cannot read locked packages: no lock record exists, run update first")

        lock = self.get_lock_data()
        entries = list(lock["packages"])
        if with_dev:
            entries.extend(lock.get("packages-dev") or [])

        return [load_package(entry, repository="lock") for entry in entries]

    def get_dev_package_names(self) -> list[str]:
        lock = self.get_lock_data()
        return [entry["name"].lower() for entry in lock.get("packages-dev") or []]

    def get_platform_requirements(self, with_dev: bool = False) -> dict[str, str]:
        lock = self.get_lock_data()
        requirements = dict(lock.get("platform") or {})
        if with_dev:
            requirements.update(lock.get("platform-dev") or {})
        return requirements

    def get_minimum_stability(self) -> str:
        return self.get_lock_data().get("minimum-stability") or "stable"

    def get_stability_flags(self) -> dict[str, str]:
        flags = self.get_lock_data().get("stability-flags") or {}
        return {name: _STABILITY_NAMES.get(code, "stable") for name, code in flags.items()}

    def get_prefer_stable(self) -> bool | None:
        # None when the record predates the flag
        return self.get_lock_data().get("prefer-stable")

    def get_prefer_lowest(self) -> bool | None:
        return self.get_lock_data().get("prefer-lowest")

    def get_platform_overrides(self) -> dict[str, str]:
        return self.get_lock_data().get("platform-overrides") or {}

    def get_aliases(self) -> list[RootAlias]:
        return [RootAlias.from_dict(alias) for alias in self.get_lock_data().get("aliases") or []]

    def set_lock_data(
        self,
        packages: list[PackageVersion],
        dev_packages: list[PackageVersion] | None,
        platform_reqs: dict[str, str],
        platform_dev_reqs: dict[str, str],
        aliases: list[RootAlias],
        minimum_stability: str,
        stability_flags: dict[str, str],
        prefer_stable: bool,
        prefer_lowest: bool,
        platform_overrides: dict[str, str],
    ) -> bool:
        """
        Write a new lock record.

        Every package is validated before anything is written, so an invalid package
        leaves the previous record untouched.

        Returns:
            False when the new record is identical to the existing one.

        Raises:
            InvalidPackageError: If a package has no name or no version.
        """
        record = LockRecord(
            content_hash=self.content_hash,
            packages=self._lock_packages(packages),
            packages_dev=self._lock_packages(dev_packages) if dev_packages is not None else None,
            aliases=[alias.to_dict() for alias in aliases],
            minimum_stability=minimum_stability,
            stability_flags={name: STABILITIES[tier] for name, tier in sorted(stability_flags.items())},
            platform=dict(platform_reqs),
            platform_dev=dict(platform_dev_reqs),
            platform_overrides=dict(platform_overrides),
            prefer_stable=prefer_stable,
            prefer_lowest=prefer_lowest,
        )
        data = record.to_dict()

        if self.json_file.exists():
            try:
                if self.json_file.read() == data:
                    logger.info(f"[Lock] {self.json_file.path} is already up to date")
                    self._lock_data = data
                    return False
            except InputInvariantViolation:
                logger.warning(f"[Lock] Replacing unreadable lock file {self.json_file.path}")

        self.json_file.write(data)
        self._lock_data = None
        logger.info(
            f"[Lock] Wrote {self.json_file.path} ({len(record.packages)} packages, "
            f"{len(record.packages_dev or [])} dev packages)"
        )
        return True

    @staticmethod
    def _lock_packages(packages: list[PackageVersion]) -> list[dict]:
        entries = []
        for package in packages:
            name = getattr(package, "pretty_name", None)
            version = getattr(package, "pretty_version", None)
            if not name:
                raise InvalidPackageError("Package has no name and cannot be locked")
            if not version:
                raise InvalidPackageError(
                    f"Package {name} has no version defined and cannot be locked, "
                    "every locked package needs a version",
                    name,
                )
            entries.append((name.lower(), package.version, dump_package(package)))
        entries.sort(key=lambda entry: (entry[0], entry[1]))
        return [entry for _, _, entry in entries]

    @asynccontextmanager
    async def locked(self):
        """Critical section spanning reading the old record and writing the new one."""
        async with self.json_file.locked():
            self._lock_data = None
            yield self
