"""
Operations produced by diffing two sets of decisions.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from package_resolver.models.package import PackageVersion
from package_resolver.parsers.version import compare_versions


class OperationType(Enum):
    INSTALL = "install"
    UPDATE = "update"
    REMOVE = "remove"


@dataclass(frozen=True)
class Operation:
    """
    One step for an external installer.

    ``package`` is the target version for install/update and the removed version for
    remove; ``initial`` is the currently installed version for updates.
    """

    type: OperationType
    package: PackageVersion
    initial: PackageVersion | None = None
    position: int = 0

    @property
    def is_downgrade(self) -> bool:
        if self.type is not OperationType.UPDATE or self.initial is None:
            return False
        return compare_versions(self.package.version, self.initial.version) < 0

    def __str__(self) -> str:
        match self.type:
            case OperationType.INSTALL:
                return f"Installing {self.package.pretty_name} ({self.package.pretty_version})"
            case OperationType.UPDATE:
                verb = "Downgrading" if self.is_downgrade else "Upgrading"
                return (
                    f"{verb} {self.package.pretty_name} "
                    f"({self.initial.pretty_version} => {self.package.pretty_version})"
                )
            case OperationType.REMOVE:
                return f"Removing {self.package.pretty_name} ({self.package.pretty_version})"

    def to_dict(self) -> dict:
        data = {
            "position": self.position,
            "type": self.type.value,
            "name": self.package.pretty_name,
            "version": self.package.pretty_version,
        }
        if self.initial is not None:
            data["from"] = self.initial.pretty_version
        return data
