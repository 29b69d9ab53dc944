"""
Project manifest loader.

Reads the project's manifest document (``require``, ``require-dev``,
``minimum-stability``, ``prefer-stable``, ``config.platform``, ...) and turns it into
a ``Request`` for the solver.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from package_resolver.exceptions import ConstraintParseError, InputInvariantViolation
from package_resolver.models.package import PackageVersion, is_platform_package
from package_resolver.models.request import Request, RootAlias
from package_resolver.parsers.constraint import parse_constraints
from package_resolver.parsers.version import STABILITIES, normalize, normalize_stability, parse_stability

logger = logging.getLogger(__name__)

_STABILITY_FLAG_RE = re.compile(r"^[^@]*?@(" + "|".join(STABILITIES) + r")$", re.I)
_ALIAS_RE = re.compile(r"(?:^|\| *|, *)([^,\s#|]+)(?:#[^ ]+)? +as +([^,\s|]+)(?:$| *\|| *,)")
_AND_SPLIT_RE = re.compile(r"(?<!as)(?<![=>< ,]) *(?<!-)[, ](?!-) *(?!,|as|$)")


@dataclass
class Manifest:
    """A parsed project manifest and the raw text it was read from."""

    content: str
    data: dict = field(default_factory=dict)
    path: Path | None = None

    @classmethod
    def from_string(cls, content: str, path: Path | None = None) -> Manifest:
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            where = f" {path}" if path else ""
            raise InputInvariantViolation(f"Manifest{where} is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise InputInvariantViolation("Manifest must be a JSON object")
        return cls(content=content, data=data, path=path)

    @classmethod
    def from_file(cls, path: Path) -> Manifest:
        path = Path(path)
        if not path.exists():
            raise InputInvariantViolation(f"Manifest {path} does not exist")
        return cls.from_string(path.read_text(encoding="utf-8"), path=path)

    @property
    def name(self) -> str:
        return self.data.get("name", "__root__")

    @property
    def require(self) -> dict[str, str]:
        return self.data.get("require") or {}

    @property
    def require_dev(self) -> dict[str, str]:
        return self.data.get("require-dev") or {}

    @property
    def minimum_stability(self) -> str:
        return normalize_stability(self.data.get("minimum-stability") or "stable")

    @property
    def prefer_stable(self) -> bool:
        return bool(self.data.get("prefer-stable", False))

    @property
    def platform_overrides(self) -> dict[str, str]:
        return (self.data.get("config") or {}).get("platform") or {}

    @property
    def repositories(self) -> list:
        return self.data.get("repositories") or []


def extract_stability_flags(
    requires: dict[str, str], minimum_stability: str, flags: dict[str, str] | None = None
) -> dict[str, str]:
    """
    Derive per-package stability floors from root constraints.

    An explicit ``@beta`` style flag always wins. Otherwise a plain unstable version
    (``1.0.0-beta2``, ``dev-main``) lowers the floor of that package when it is less
    stable than the minimum stability. The most unstable flag seen for a name is kept.
    """
    flags = dict(flags or {})
    floor = STABILITIES[minimum_stability]

    for req_name, req_version in requires.items():
        name = req_name.lower()
        constraints = []
        for or_constraint in re.split(r"\s*\|\|?\s*", str(req_version).strip()):
            constraints.extend(_AND_SPLIT_RE.split(or_constraint))

        matched = False
        for constraint in constraints:
            match = _STABILITY_FLAG_RE.match(constraint)
            if match:
                stability = normalize_stability(match.group(1))
                if name in flags and STABILITIES[flags[name]] > STABILITIES[stability]:
                    continue
                flags[name] = stability
                matched = True
        if matched:
            continue

        for constraint in constraints:
            version = re.sub(r"^([^,\s@]+) as .+$", r"\1", constraint)
            if not re.match(r"^[^,\s@]+$", version):
                continue
            stability = parse_stability(version)
            if stability == "stable":
                continue
            if name in flags and STABILITIES[flags[name]] > STABILITIES[stability]:
                continue
            if floor >= STABILITIES[stability]:
                continue
            flags[name] = stability

    return flags


def extract_aliases(requires: dict[str, str]) -> list[RootAlias]:
    """Collect inline aliases (``"dev-main as 1.0.x-dev"``) from root constraints."""
    aliases = []
    for req_name, req_version in requires.items():
        req_version = str(req_version)
        match = _ALIAS_RE.search(req_version)
        if match:
            aliases.append(
                RootAlias(
                    package=req_name.lower(),
                    version=normalize(match.group(1)),
                    alias=match.group(2),
                    alias_normalized=normalize(match.group(2)),
                )
            )
        elif " as " in req_version:
            raise ConstraintParseError(
                "Invalid alias definition, expected \"<version> as <alias>\"", f"{req_name}: {req_version}"
            )
    return aliases


def build_request(
    manifest: Manifest,
    platform: dict[str, str] | None = None,
    locked: list[PackageVersion] | None = None,
    update: list[str] | None = None,
    update_all: bool = False,
    prefer_lowest: bool = False,
    include_dev: bool = True,
    ignore_platform_reqs: bool = False,
    minimal_changes: bool = False,
) -> Request:
    """
    Assemble the solver request for ``manifest``.

    ``locked`` packages become fixed; names listed in ``update`` (or all of them with
    ``update_all``) are allowed to move.
    """
    minimum_stability = manifest.minimum_stability
    all_requires = {**manifest.require, **(manifest.require_dev if include_dev else {})}

    request = Request(
        platform=dict(platform or {}),
        minimum_stability=minimum_stability,
        stability_flags=extract_stability_flags(all_requires, minimum_stability),
        prefer_stable=manifest.prefer_stable,
        prefer_lowest=prefer_lowest,
        aliases=extract_aliases(all_requires),
        platform_overrides=dict(manifest.platform_overrides),
        ignore_platform_reqs=ignore_platform_reqs,
        include_dev=include_dev,
        update_all=update_all,
        updatable={name.lower() for name in update or []},
        minimal_changes=minimal_changes,
    )

    for dev, requires in ((False, manifest.require), (True, manifest.require_dev)):
        for name, pretty_constraint in requires.items():
            if ignore_platform_reqs and is_platform_package(name):
                continue
            request.require(name, parse_constraints(str(pretty_constraint)), str(pretty_constraint), dev=dev)

    for package in locked or []:
        request.fix(package)

    logger.debug(
        f"Request for {manifest.name}: {len(request.requires)} root requirements, "
        f"{len(request.fixed)} locked, {len(request.stability_flags)} stability flags"
    )
    return request
