"""Package metadata sources."""

from pathlib import Path

from package_resolver.core.config import ResolverConfig
from package_resolver.exceptions import ConfigurationError
from package_resolver.repositories.array import ArrayRepository
from package_resolver.repositories.base import Repository
from package_resolver.repositories.http import HttpRepository
from package_resolver.repositories.json_file import JsonFileRepository
from package_resolver.repositories.platform import PlatformRepository


def get_repository(source, config: ResolverConfig | None = None, base_dir: Path | None = None) -> Repository:
    """
    Factory function to create a repository from a manifest entry or a CLI string.

    ``source`` is either a URL / file path string or a dict with a ``type`` key
    (``composer``/``http``, ``file``/``json`` or ``package``).
    """
    if isinstance(source, str):
        kind = "http" if source.startswith(("http://", "https://")) else "file"
        source = {"type": kind, "url": source}

    match source.get("type"):
        case "composer" | "http":
            return HttpRepository(source["url"], name=source.get("name"), config=config)
        case "file" | "json":
            path = Path(source["url"])
            if base_dir is not None and not path.is_absolute():
                path = base_dir / path
            return JsonFileRepository(path, name=source.get("name"))
        case "package":
            packages = source.get("package")
            records = packages if isinstance(packages, list) else [packages]
            return ArrayRepository(records, name=source.get("name", "package"))
        case _:
            raise ConfigurationError(f"Unknown repository type: {source.get('type')!r}. Use 'composer', 'file' or 'package'.")


__all__ = [
    "Repository",
    "ArrayRepository",
    "JsonFileRepository",
    "HttpRepository",
    "PlatformRepository",
    "get_repository",
]
