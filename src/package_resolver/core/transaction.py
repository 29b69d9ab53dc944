"""
Transaction builder: diff two package sets into ordered operations.
"""

import logging

from package_resolver.core.pool import PLATFORM_REPOSITORY
from package_resolver.exceptions import DependencyCycleError
from package_resolver.models.operation import Operation, OperationType
from package_resolver.models.package import PackageVersion
from package_resolver.parsers.version import is_branch

logger = logging.getLogger(__name__)


def _provides(package: PackageVersion, target: str, constraint) -> bool:
    """True when ``package`` satisfies a requirement on ``target`` at ``constraint``."""
    if package.name == target:
        return constraint.matches_version(package.version)
    link = package.replaces.get(target) or package.provides.get(target)
    return link is not None and link.constraint.intersects(constraint)


class TransactionBuilder:
    """
    Computes install, update and remove operations between ``prior`` and ``result``.

    Operations are ordered so that a package is installed or updated only after the
    new packages it requires, and removed only after the packages that required it
    were removed or updated. Within one rank, operations are sorted by package name.
    """

    def __init__(self, prior: list[PackageVersion], result: list[PackageVersion]):
        self.prior = {pkg.name: pkg for pkg in prior if self._tracked(pkg)}
        self.result = {pkg.name: pkg for pkg in result if self._tracked(pkg)}

    @staticmethod
    def _tracked(package: PackageVersion) -> bool:
        return not package.is_alias and package.repository != PLATFORM_REPOSITORY

    @staticmethod
    def _changed(old: PackageVersion, new: PackageVersion) -> bool:
        if old.version != new.version:
            return True
        # same branch name can point at a new revision
        if is_branch(new.version) or new.version.endswith("-dev"):
            return old.metadata.get("source") != new.metadata.get("source") or old.metadata.get(
                "dist"
            ) != new.metadata.get("dist")
        return False

    def operations(self) -> list[Operation]:
        # node key -> (type, package, initial)
        nodes: dict[tuple[str, str], tuple[OperationType, PackageVersion, PackageVersion | None]] = {}

        for name in sorted(self.result):
            new = self.result[name]
            old = self.prior.get(name)
            if old is None:
                nodes[("install", name)] = (OperationType.INSTALL, new, None)
            elif self._changed(old, new):
                nodes[("update", name)] = (OperationType.UPDATE, new, old)

        for name in sorted(self.prior):
            if name not in self.result:
                nodes[("remove", name)] = (OperationType.REMOVE, self.prior[name], None)

        edges = self._edges(nodes)
        ordered = self._order(nodes, edges)

        operations = []
        for position, key in enumerate(ordered):
            op_type, package, initial = nodes[key]
            operations.append(Operation(type=op_type, package=package, initial=initial, position=position))

        logger.debug(f"Transaction: {len(operations)} operations")
        return operations

    def _edges(self, nodes: dict) -> dict[tuple, set[tuple]]:
        """Map each node to the nodes that must run before it."""
        before: dict[tuple, set[tuple]] = {key: set() for key in nodes}
        changing = [key for key in nodes if key[0] != "remove"]
        removing = [key for key in nodes if key[0] == "remove"]

        for key in changing:
            package = nodes[key][1]
            for target, link in package.requires.items():
                for other in changing:
                    if other != key and _provides(nodes[other][1], target, link.constraint):
                        before[key].add(other)

        for key in removing:
            removed = nodes[key][1]
            # old packages that depended on the removed one go first
            for other_key in nodes:
                if other_key == key or other_key[0] == "install":
                    continue
                dependent = self.prior.get(other_key[1])
                if dependent is None:
                    continue
                for target, link in dependent.requires.items():
                    if _provides(removed, target, link.constraint):
                        before[key].add(other_key)
                        break
        return before

    @staticmethod
    def _order(nodes: dict, before: dict[tuple, set[tuple]]) -> list[tuple]:
        remaining = {key: set(deps) for key, deps in before.items()}
        ordered: list[tuple] = []

        while remaining:
            layer = sorted((key for key, deps in remaining.items() if not deps), key=lambda k: (k[1], k[0]))
            if not layer:
                raise DependencyCycleError(TransactionBuilder._find_cycle(remaining))
            for key in layer:
                ordered.append(key)
                del remaining[key]
            done = set(layer)
            for deps in remaining.values():
                deps -= done
        return ordered

    @staticmethod
    def _find_cycle(remaining: dict[tuple, set[tuple]]) -> list[str]:
        start = min(remaining)
        path = [start]
        index = {start: 0}
        current = start
        while True:
            current = min(remaining[current])
            if current in index:
                cycle = path[index[current]:] + [current]
                return [name for _, name in cycle]
            index[current] = len(path)
            path.append(current)
