"""
JSON document on disk with atomic writes and an advisory lock.
"""

import asyncio
import fcntl
import json
import logging
import os
import weakref
from contextlib import asynccontextmanager
from pathlib import Path

from package_resolver.exceptions import InputInvariantViolation

logger = logging.getLogger(__name__)

# event loop -> {resolved lock path: asyncio.Lock}
_loop_locks: weakref.WeakKeyDictionary = weakref.WeakKeyDictionary()


class JsonFile:
    """
    A JSON file that is always replaced whole.

    ``write`` goes through a temporary sibling and ``os.replace`` so readers see
    either the previous document or the new one, never a partial file.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self.lock_path = self.path.with_name(self.path.name + ".lock")

    def exists(self) -> bool:
        return self.path.exists()

    def read(self) -> dict:
        try:
            with open(self.path, encoding="utf-8") as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise InputInvariantViolation(f"{self.path} does not contain valid JSON: {e}") from e

    @staticmethod
    def encode(data) -> str:
        return json.dumps(data, indent=4, ensure_ascii=False) + "\n"

    def write(self, data) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_name(f".{self.path.name}.{os.getpid()}.tmp")
        try:
            with open(temp_path, "w", encoding="utf-8") as f:
                f.write(self.encode(data))
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, self.path)
        finally:
            if temp_path.exists():
                temp_path.unlink()
        logger.debug(f"Wrote {self.path}")

    @asynccontextmanager
    async def locked(self, poll_interval: float = 0.05):
        """
        Hold an exclusive advisory lock on the sidecar ``.lock`` file.

        Holders in the same event loop queue on an ``asyncio.Lock`` first. The file
        lock is then polled without blocking, so a holder in another process never
        stalls the loop.
        """
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        loop_locks = _loop_locks.setdefault(asyncio.get_running_loop(), {})
        local = loop_locks.setdefault(self.lock_path.resolve(), asyncio.Lock())
        async with local:
            with open(self.lock_path, "w") as lock_file:
                while True:
                    try:
                        fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                        break
                    except BlockingIOError:
                        logger.debug(f"[Lock] Waiting for {self.lock_path}")
                        await asyncio.sleep(poll_interval)
                try:
                    yield self
                finally:
                    fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)
