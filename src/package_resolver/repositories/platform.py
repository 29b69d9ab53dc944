"""
Platform facts: runtime and extension pseudo-packages available on this machine.
"""

import logging
import platform

from package_resolver.exceptions import ConstraintParseError, DataSourceError
from package_resolver.models.package import is_platform_package
from package_resolver.parsers.version import normalize

logger = logging.getLogger(__name__)


class PlatformRepository:
    """
    Collects platform facts (name -> version).

    The running interpreter is reported as ``python``; ``overrides`` (from the
    manifest's ``config.platform`` or the command line) replace detected values.
    An override set to ``False`` removes the fact.
    """

    name = "platform"

    def __init__(self, overrides: dict | None = None, detect: bool = True):
        self.overrides = dict(overrides or {})
        self.detect = detect

    def facts(self) -> dict[str, str]:
        """
        Raises:
            DataSourceError: If a platform name or version cannot be understood.
        """
        facts: dict[str, str] = {}
        if self.detect:
            facts["python"] = platform.python_version()

        for name, version in self.overrides.items():
            if not is_platform_package(name):
                raise DataSourceError(f"{name} is not a platform package name", source=self.name)
            if version is False:
                facts.pop(name.lower(), None)
                continue
            try:
                normalize(str(version))
            except ConstraintParseError as e:
                raise DataSourceError(f"Invalid version {version!r} for {name}: {e}", source=self.name) from e
            facts[name.lower()] = str(version)

        logger.debug(f"[Platform] {', '.join(f'{k} {v}' for k, v in sorted(facts.items())) or 'no facts'}")
        return facts

    async def fetch_versions(self, name: str) -> list[dict]:
        version = self.facts().get(name.lower())
        return [] if version is None else [{"name": name.lower(), "version": version}]
