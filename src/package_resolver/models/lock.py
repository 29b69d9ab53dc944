"""
Lock record: the persisted result of a successful resolution.

The record is written whole and its key order never changes, so consecutive lock
files diff cleanly.
"""

from dataclasses import dataclass, field

LOCK_README = [
    "This file locks the dependencies of your project to a known state",
    "Regenerate it with `package-resolver update`; do not edit it by hand",
    "This file is @generated automatically",
]

RESOLVER_API_VERSION = "2.6.0"

# Keys in the order they are written.
LOCK_FIELDS = (
    "_readme",
    "content-hash",
    "packages",
    "packages-dev",
    "aliases",
    "minimum-stability",
    "stability-flags",
    "platform",
    "platform-dev",
    "platform-overrides",
    "prefer-stable",
    "prefer-lowest",
    "plugin-api-version",
)


@dataclass
class LockRecord:
    """In-memory form of the lock file."""

    content_hash: str
    packages: list[dict] = field(default_factory=list)
    packages_dev: list[dict] | None = field(default_factory=list)
    aliases: list[dict] = field(default_factory=list)
    minimum_stability: str = "stable"
    stability_flags: dict[str, int] = field(default_factory=dict)
    platform: dict[str, str] = field(default_factory=dict)
    platform_dev: dict[str, str] = field(default_factory=dict)
    platform_overrides: dict[str, str] = field(default_factory=dict)
    prefer_stable: bool = False
    prefer_lowest: bool = False
    plugin_api_version: str = RESOLVER_API_VERSION
    readme: list[str] = field(default_factory=lambda: list(LOCK_README))

    def to_dict(self) -> dict:
        """Serialize with the fixed key order; empty collections are kept."""
        data = {
            "_readme": self.readme,
            "content-hash": self.content_hash,
            "packages": self.packages,
            "packages-dev": self.packages_dev,
            "aliases": self.aliases,
            "minimum-stability": self.minimum_stability,
            "stability-flags": self.stability_flags,
            "platform": self.platform,
            "platform-dev": self.platform_dev,
            "platform-overrides": self.platform_overrides,
            "prefer-stable": self.prefer_stable,
            "prefer-lowest": self.prefer_lowest,
            "plugin-api-version": self.plugin_api_version,
        }
        return data
