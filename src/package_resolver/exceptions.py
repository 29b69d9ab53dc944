"""
Exceptions raised by the resolution engine and its collaborators.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from package_resolver.core.pool import Pool
    from package_resolver.core.problem import Problem


class ResolverError(Exception):
    """Base exception class for all package-resolver errors."""

    pass


class ConfigurationError(ResolverError):
    """Raised when configuration values are invalid."""

    pass


class ConstraintParseError(ResolverError, ValueError):
    """Raised when a version or constraint string cannot be parsed."""

    def __init__(self, message: str, value: str | None = None):
        self.value = value
        if value is not None:
            message = f"Could not parse '{value}': {message}"
        super().__init__(message)


class InputInvariantViolation(ResolverError):
    """
    Raised when the inputs or the lock record break an invariant.

    Always fatal to the current call and never retried.
    """

    def __init__(self, message: str, package: str | None = None):
        self.package = package
        super().__init__(message)


class InvalidPackageError(InputInvariantViolation):
    """Raised when a package record lacks a name or a version."""

    pass


class LockNotFoundError(InputInvariantViolation):
    """Raised when locked packages are requested but no lock record exists."""

    pass


class DependencyCycleError(InputInvariantViolation):
    """Raised when operations cannot be ordered because require-edges form a cycle."""

    def __init__(self, cycle: list[str]):
        self.cycle = cycle
        super().__init__(f"Dependency cycle prevents ordering operations: {' -> '.join(cycle)}")


class SolverProblemsError(ResolverError):
    """
    Raised when the requirements cannot be satisfied.

    This is a designed outcome rather than a bug: ``problem`` holds the rules of the
    final conflict chain and can render a readable explanation.
    """

    def __init__(self, problem: Problem, pool: Pool):
        self.problem = problem
        self.pool = pool
        lines = problem.explain(pool)
        super().__init__(
            "Your requirements could not be resolved to an installable set of packages.\n"
            + "\n".join(f"  - {line}" for line in lines)
        )


class SearchBudgetExceeded(ResolverError):
    """Raised when the solver runs out of its step or time budget before finishing."""

    def __init__(self, steps: int, elapsed: float, reason: str):
        self.steps = steps
        self.elapsed = elapsed
        self.reason = reason
        super().__init__(
            f"Dependency search exhausted its {reason} budget after {steps} steps "
            f"({elapsed:.2f}s); the problem may still be satisfiable"
        )


class ResolutionCancelled(ResolverError):
    """Raised when a running resolution observes its cancel signal."""

    pass


class StaleLockWarning(ResolverError):
    """The lock record does not match the current manifest content."""

    def __init__(self, lock_path: str | None = None):
        self.lock_path = lock_path
        where = f" ({lock_path})" if lock_path else ""
        super().__init__(
            f"The lock file{where} is not up to date with the latest changes in the manifest. "
            "Run the update command to refresh it."
        )


class DataSourceError(ResolverError):
    """Raised when a repository or platform collaborator fails."""

    def __init__(self, message: str, source: str | None = None):
        self.source = source
        if source:
            message = f"[{source}] {message}"
        super().__init__(message)
