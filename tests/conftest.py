"""Shared fixtures: package, pool and request builders."""

import pytest

from package_resolver.core.pool import PLATFORM_REPOSITORY, Pool
from package_resolver.models.package import PackageVersion
from package_resolver.parsers.package import load_package
from package_resolver.parsers.version import normalize


def make_package(name: str, version: str, **sections) -> PackageVersion:
    """Build a package from keyword sections: ``make_package("a", "1.0", require={"b": "^1.0"})``."""
    raw = {"name": name, "version": version}
    for key, value in sections.items():
        raw[key.replace("_", "-")] = value
    return load_package(raw, repository="test")


def make_platform(name: str, version: str) -> PackageVersion:
    return PackageVersion(
        name=name,
        version=normalize(version),
        pretty_version=version,
        repository=PLATFORM_REPOSITORY,
        priority=-1,
    )


@pytest.fixture
def package():
    return make_package


@pytest.fixture
def platform_package():
    return make_platform


@pytest.fixture
def pool_of():
    """Build a Pool from ``(name, version, sections)`` tuples or PackageVersion objects."""

    def build(*entries) -> Pool:
        packages = []
        for entry in entries:
            if isinstance(entry, PackageVersion):
                packages.append(entry)
            else:
                name, version, *rest = entry
                packages.append(make_package(name, version, **(rest[0] if rest else {})))
        return Pool(packages)

    return build
