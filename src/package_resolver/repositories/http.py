"""
HTTP repository serving per-package metadata documents.

Fetches ``{url}/p2/{vendor/name}.json`` and expands the minified version lists.
Transient failures are retried with exponential backoff; a repository that keeps
failing trips its circuit breaker and fails fast afterwards.
"""

import asyncio
import logging
import time

import httpx

from package_resolver.core.config import ResolverConfig
from package_resolver.core.resilience import CircuitBreaker, ExponentialBackoff
from package_resolver.exceptions import DataSourceError

logger = logging.getLogger(__name__)

MINIFIED_FORMAT = "composer/2.0"


def expand_minified(versions: list[dict]) -> list[dict]:
    """Each entry only lists keys that changed since the previous one; ``"__unset"`` drops a key."""
    expanded = []
    current: dict | None = None
    for version_data in versions:
        if current is None:
            current = dict(version_data)
        else:
            for key, value in version_data.items():
                if value == "__unset":
                    current.pop(key, None)
                else:
                    current[key] = value
        expanded.append(dict(current))
    return expanded


class HttpRepository:
    def __init__(
        self,
        url: str,
        name: str | None = None,
        config: ResolverConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url.rstrip("/")
        self.name = name or self.url
        self.config = config or ResolverConfig()
        self.backoff = ExponentialBackoff.from_config(self.config)
        self.circuit_breaker = CircuitBreaker.from_config(self.config)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self.stats: dict = {
            "total_requests": 0,
            "successful_requests": 0,
            "failed_requests": 0,
            "bytes_downloaded": 0,
            "start_time": time.time(),
        }

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.config.http_timeout,
                follow_redirects=True,
                transport=self._transport,
                headers={"Accept": "application/json"},
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def _request(self, url: str, attempt: int = 0) -> httpx.Response:
        """GET with retry; raises DataSourceError once retries are exhausted."""
        if self.circuit_breaker.is_open(self.name):
            raise DataSourceError("Circuit breaker open, repository is failing", source=self.name)

        self.stats["total_requests"] += 1
        try:
            resp = await self._get_client().get(url)
        except (httpx.TimeoutException, httpx.ConnectError) as e:
            self.stats["failed_requests"] += 1
            if self.backoff.should_retry(attempt):
                delay = await self.backoff.wait(attempt)
                logger.debug(f"[HTTP] {type(e).__name__} for {url}, retried {attempt + 1} after {delay:.1f}s")
                return await self._request(url, attempt + 1)
            self.circuit_breaker.record_failure(self.name)
            raise DataSourceError(f"Request to {url} failed after {attempt + 1} attempts: {e}", source=self.name) from e

        if resp.status_code == 429:
            self.stats["failed_requests"] += 1
            if self.backoff.should_retry(attempt):
                retry_after = int(resp.headers.get("Retry-After", 60))
                logger.warning(f"[HTTP] Rate limited by {self.name}. Waiting {retry_after}s...")
                await asyncio.sleep(retry_after)
                return await self._request(url, attempt + 1)
            self.circuit_breaker.record_failure(self.name)
            raise DataSourceError(f"Rate limited on {url}", source=self.name)

        if resp.status_code >= 500:
            self.stats["failed_requests"] += 1
            if self.backoff.should_retry(attempt):
                await self.backoff.wait(attempt)
                return await self._request(url, attempt + 1)
            self.circuit_breaker.record_failure(self.name)
            raise DataSourceError(f"{url} returned HTTP {resp.status_code}", source=self.name)

        self.stats["successful_requests"] += 1
        self.stats["bytes_downloaded"] += len(resp.content)
        self.circuit_breaker.record_success(self.name)
        return resp

    async def fetch_versions(self, name: str) -> list[dict]:
        name = name.lower()
        url = f"{self.url}/p2/{name}.json"
        resp = await self._request(url)

        if resp.status_code == 404:
            logger.debug(f"[HTTP] {name} not found on {self.name}")
            return []
        if resp.status_code != 200:
            raise DataSourceError(f"{url} returned HTTP {resp.status_code}", source=self.name)

        try:
            data = resp.json()
        except ValueError as e:
            raise DataSourceError(f"Invalid JSON from {url}: {e}", source=self.name) from e

        versions = (data.get("packages") or {}).get(name, [])
        if data.get("minified") == MINIFIED_FORMAT:
            versions = expand_minified(versions)
        return [{"name": name, **record} for record in versions]
