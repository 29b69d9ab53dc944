"""
Package record loader and dumper.

Converts raw package records (as served by repositories and stored in lock files)
into ``PackageVersion`` objects and back.
"""

from package_resolver.exceptions import InvalidPackageError
from package_resolver.models.package import Link, PackageVersion
from package_resolver.parsers.constraint import parse_constraints
from package_resolver.parsers.version import normalize

# Link sections in the order they are dumped, with the description used in messages.
LINK_SECTIONS = {
    "require": "requires",
    "require-dev": "requires (for development)",
    "conflict": "conflicts",
    "provide": "provides",
    "replace": "replaces",
}

_ATTRIBUTES = {
    "require": "requires",
    "require-dev": "require_dev",
    "conflict": "conflicts",
    "provide": "provides",
    "replace": "replaces",
}

# Keys consumed by the loader; everything else is transport metadata.
_RESERVED_KEYS = {"name", "version", "version_normalized", *LINK_SECTIONS}


def _create_links(source: str, pretty_version: str, section: str, raw_links) -> dict[str, Link]:
    if not raw_links:
        return {}
    if not isinstance(raw_links, dict):
        raise InvalidPackageError(f"Package {source}'s {section} must be an object, got {type(raw_links).__name__}", source)

    links = {}
    for target, pretty_constraint in raw_links.items():
        pretty_constraint = str(pretty_constraint)
        if pretty_constraint == "self.version":
            pretty_constraint = pretty_version
        links[target.lower()] = Link(
            source=source,
            target=target,
            constraint=parse_constraints(pretty_constraint),
            pretty_constraint=pretty_constraint,
            description=LINK_SECTIONS[section],
        )
    return links


def load_package(raw: dict, repository: str = "", priority: int = 0) -> PackageVersion:
    """
    Build a PackageVersion from a raw record.

    Raises:
        InvalidPackageError: If the record has no name or no version.
        ConstraintParseError: If the version or a link constraint is malformed.
    """
    name = raw.get("name")
    if not name or not isinstance(name, str):
        raise InvalidPackageError("Package record has no name")
    pretty_version = raw.get("version")
    if pretty_version is None or pretty_version == "":
        raise InvalidPackageError(f"Package {name} has no version defined", name)
    pretty_version = str(pretty_version)

    version = raw.get("version_normalized") or normalize(pretty_version)
    source = name.lower()

    links = {
        attribute: _create_links(source, pretty_version, section, raw.get(section))
        for section, attribute in _ATTRIBUTES.items()
    }
    metadata = {key: value for key, value in raw.items() if key not in _RESERVED_KEYS}

    return PackageVersion(
        name=name,
        version=version,
        pretty_version=pretty_version,
        pretty_name=name,
        metadata=metadata,
        repository=repository,
        priority=priority,
        **links,
    )


def dump_package(package: PackageVersion) -> dict:
    """Serialize a package into its lock entry: name, version, links, then metadata."""
    data = {"name": package.pretty_name, "version": package.pretty_version}
    for section, attribute in _ATTRIBUTES.items():
        links: dict[str, Link] = getattr(package, attribute)
        if links:
            data[section] = {link.target: link.pretty_constraint for link in links.values()}
    for key, value in package.metadata.items():
        data[key] = value
    return data
