"""
Repository Protocol: the interface every package metadata source implements.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class Repository(Protocol):
    """
    Protocol that all repositories must implement.

    Repositories hand out raw package records (plain dicts, as they appear in a lock
    file) and never build PackageVersion objects themselves; the pool builder
    normalizes them.
    """

    name: str

    async def fetch_versions(self, name: str) -> list[dict]:
        """Return every record named ``name`` or replacing/providing it."""
        ...


def record_matches(record: dict, name: str) -> bool:
    """True when a raw record is called ``name`` or replaces/provides it."""
    name = name.lower()
    if str(record.get("name", "")).lower() == name:
        return True
    for section in ("replace", "provide"):
        links = record.get(section)
        if isinstance(links, dict) and any(target.lower() == name for target in links):
            return True
    return False
