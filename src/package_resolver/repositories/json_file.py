"""
Repository backed by a local JSON document.

Accepted layouts:
    [record, ...]
    {"packages": [record, ...]}
    {"packages": {"vendor/name": [record, ...]}}
    {"packages": {"vendor/name": {"1.0.0": record, ...}}}
"""

import asyncio
import json
import logging
from pathlib import Path

import aiofiles

from package_resolver.exceptions import DataSourceError
from package_resolver.repositories.base import record_matches

logger = logging.getLogger(__name__)


class JsonFileRepository:
    """Loads the file once, on first use."""

    def __init__(self, path: Path | str, name: str | None = None):
        self.path = Path(path)
        self.name = name or f"file:{self.path.name}"
        self._records: list[dict] | None = None
        self._lock = asyncio.Lock()

    async def _load(self) -> list[dict]:
        async with self._lock:
            if self._records is not None:
                return self._records
            try:
                async with aiofiles.open(self.path, encoding="utf-8") as f:
                    data = json.loads(await f.read())
            except FileNotFoundError as e:
                raise DataSourceError(f"Repository file {self.path} does not exist", source=self.name) from e
            except json.JSONDecodeError as e:
                raise DataSourceError(f"Repository file {self.path} is not valid JSON: {e}", source=self.name) from e

            self._records = self._flatten(data)
            logger.debug(f"[{self.name}] Loaded {len(self._records)} records from {self.path}")
            return self._records

    def _flatten(self, data) -> list[dict]:
        packages = data.get("packages") if isinstance(data, dict) else data
        match packages:
            case list():
                return [record for record in packages if isinstance(record, dict)]
            case dict():
                records = []
                for name in sorted(packages):
                    versions = packages[name]
                    if isinstance(versions, dict):
                        versions = list(versions.values())
                    for record in versions:
                        if isinstance(record, dict):
                            records.append({"name": name, **record})
                return records
            case _:
                raise DataSourceError(f"Unsupported repository layout in {self.path}", source=self.name)

    async def fetch_versions(self, name: str) -> list[dict]:
        records = await self._load()
        return [record for record in records if record_matches(record, name)]
