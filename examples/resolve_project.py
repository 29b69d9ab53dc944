"""
Example: Resolve a small project against an in-memory repository.

Usage:
    python examples/resolve_project.py
"""

import asyncio
import json
import tempfile
from pathlib import Path

from package_resolver import DependencyResolver
from package_resolver.parsers.manifest import Manifest
from package_resolver.repositories import ArrayRepository, PlatformRepository


async def main():
    # Packages a registry would serve
    repository = ArrayRepository(
        [
            {"name": "acme/http", "version": "2.1.0", "require": {"acme/log": "^1.0", "python": ">=3.8"}},
            {"name": "acme/http", "version": "1.4.2", "require": {"acme/log": "^1.0"}},
            {"name": "acme/log", "version": "1.3.0"},
            {"name": "acme/log", "version": "2.0.0"},
        ],
        name="registry",
    )

    manifest = Manifest.from_string(
        json.dumps({"name": "demo/app", "require": {"acme/http": "^2.0"}, "minimum-stability": "stable"})
    )

    with tempfile.TemporaryDirectory() as tmp:
        lock_path = Path(tmp) / "project.lock"
        resolver = DependencyResolver(
            manifest,
            [repository],
            lock_path,
            platform=PlatformRepository({"python": "3.12.0"}, detect=False),
        )

        # Resolve and write the lock file
        result = await resolver.update()
        for operation in result.operations:
            print(operation)

        # Reinstall exactly what was locked
        result = await resolver.install()
        print(f"\nLocked: {', '.join(str(pkg) for pkg in result.packages)}")
        print(lock_path.read_text())


if __name__ == "__main__":
    asyncio.run(main())
