"""
Package Resolver - Dependency resolution and lock files for package manifests.

Selects one version of every package a project needs so that all requirements,
conflicts, replacements and platform constraints hold, then records the choice
in a lock file that later installs reproduce exactly.
"""

__version__ = "1.0.0"


def __getattr__(name: str):
    """Lazy import for heavy dependencies."""
    if name == "DependencyResolver":
        from package_resolver.core.resolver import DependencyResolver

        return DependencyResolver
    if name == "PackageVersion":
        from package_resolver.models.package import PackageVersion

        return PackageVersion
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = ["DependencyResolver", "PackageVersion", "__version__"]
