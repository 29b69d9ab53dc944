"""
Runtime configuration for the resolver.

Every value can be overridden from the environment with a ``PACKAGE_RESOLVER_``
prefixed variable (``PACKAGE_RESOLVER_MAX_STEPS=50000``).
"""

import logging
import os
from dataclasses import dataclass, fields

from package_resolver.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "PACKAGE_RESOLVER_"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


@dataclass
class ResolverConfig:
    """Search budget, network and platform settings."""

    max_steps: int = 1_000_000
    max_seconds: float = 300.0
    concurrency: int = 20
    http_timeout: float = 30.0
    http_max_retries: int = 3
    circuit_failure_threshold: int = 10
    circuit_timeout: float = 300.0
    ignore_platform_reqs: bool = False

    def __post_init__(self):
        if self.max_steps <= 0:
            raise ConfigurationError(f"max_steps must be positive, got {self.max_steps}")
        if self.max_seconds <= 0:
            raise ConfigurationError(f"max_seconds must be positive, got {self.max_seconds}")
        if self.concurrency <= 0:
            raise ConfigurationError(f"concurrency must be positive, got {self.concurrency}")
        if self.http_max_retries < 0:
            raise ConfigurationError(f"http_max_retries cannot be negative, got {self.http_max_retries}")

    @classmethod
    def from_env(cls, environ: dict | None = None, **overrides) -> "ResolverConfig":
        """Build a config from environment variables, then apply explicit ``overrides``."""
        environ = os.environ if environ is None else environ
        values = {}
        for f in fields(cls):
            key = ENV_PREFIX + f.name.upper()
            if key not in environ:
                continue
            raw = environ[key].strip()
            try:
                if f.type in (bool, "bool"):
                    if raw.lower() not in _TRUE | _FALSE:
                        raise ValueError(raw)
                    values[f.name] = raw.lower() in _TRUE
                elif f.type in (int, "int"):
                    values[f.name] = int(raw)
                else:
                    values[f.name] = float(raw)
            except ValueError as e:
                raise ConfigurationError(f"Invalid value for {key}: {raw!r}") from e
            logger.debug(f"Config {f.name}={values[f.name]!r} from {key}")

        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)
