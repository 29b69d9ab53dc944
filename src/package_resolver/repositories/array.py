"""
In-memory repository backed by a list of raw package records.
"""

from package_resolver.repositories.base import record_matches


class ArrayRepository:
    """Serves records from memory; used for tests and for packages embedded in the manifest."""

    def __init__(self, records: list[dict] | None = None, name: str = "array"):
        self.name = name
        self.records = list(records or [])

    def add(self, record: dict) -> None:
        self.records.append(record)

    async def fetch_versions(self, name: str) -> list[dict]:
        return [record for record in self.records if record_matches(record, name)]

    def __len__(self) -> int:
        return len(self.records)
