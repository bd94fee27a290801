"""Cooldown state store — last-fired timestamps keyed by alert/autofix key.

Keys look like ``alert:<subject>:<severity>`` or ``autofix:<module>:<action>``.
Check-and-record for a key is atomic: callers hold :meth:`StateStore.lock`
across the read and the write, so two concurrent requests for the same key
cannot both pass a cooldown check.
"""

from __future__ import annotations

import abc
import asyncio
import contextlib
import fcntl
import os
import re
import tempfile
from collections import defaultdict
from collections.abc import AsyncIterator
from pathlib import Path

import structlog

from hostwatch.state.exceptions import InvalidKeyError

logger = structlog.get_logger(__name__)

_KEY_RE = re.compile(r"^[A-Za-z0-9_.:-]+$")


def validate_key(key: str) -> str:
    """Reject keys that could escape the state directory."""
    if not _KEY_RE.match(key) or key.startswith(".") or ".." in key:
        raise InvalidKeyError(f"invalid state key: {key!r}")
    return key


def in_cooldown(last: float | None, window: float, now: float) -> bool:
    """True when *last* is recent enough to suppress a new fire.

    A timestamp in the future (clock stepped backwards) does not suppress.
    """
    if last is None or last > now:
        return False
    return now - last < window


class StateStore(abc.ABC):
    """Persistent map of key → last-fired epoch timestamp."""

    @abc.abstractmethod
    async def get(self, key: str) -> float | None:
        """Return the stored timestamp or None when absent/unreadable."""

    @abc.abstractmethod
    async def set(self, key: str, timestamp: float) -> None:
        """Store *timestamp* for *key*, replacing any previous value."""

    @abc.abstractmethod
    async def delete(self, key: str) -> None:
        """Remove *key* if present."""

    @abc.abstractmethod
    async def entries(self) -> dict[str, float]:
        """Every stored key with its timestamp."""

    @abc.abstractmethod
    def lock(self, key: str) -> contextlib.AbstractAsyncContextManager[None]:
        """Exclusive per-key critical section."""

    # ── Compound operations ──────────────────────────────────────

    async def try_acquire(
        self, key: str, window: float, now: float,
    ) -> tuple[bool, float | None]:
        """Atomically check the cooldown for *key* and record *now* if clear.

        Returns:
            (allowed, previous_timestamp)
        """
        async with self.lock(key):
            last = await self.get(key)
            if in_cooldown(last, window, now):
                return False, last
            await self.set(key, now)
            return True, last

    async def compare_and_set(
        self, key: str, expected: float | None, new: float,
    ) -> bool:
        """Write *new* only if the current value still equals *expected*."""
        async with self.lock(key):
            current = await self.get(key)
            if current != expected:
                return False
            await self.set(key, new)
            return True

    async def prune(self, older_than: float, now: float) -> int:
        """Delete entries whose timestamp is more than *older_than* seconds old."""
        removed = 0
        for key, ts in (await self.entries()).items():
            if now - ts > older_than:
                async with self.lock(key):
                    current = await self.get(key)
                    if current is not None and now - current > older_than:
                        await self.delete(key)
                        removed += 1
        if removed:
            logger.info("state_pruned", removed=removed, older_than=older_than)
        return removed

    async def clear(self) -> None:
        for key in await self.entries():
            await self.delete(key)


class MemoryStateStore(StateStore):
    """In-process store; state lives only as long as the object."""

    def __init__(self) -> None:
        self._data: dict[str, float] = {}
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def get(self, key: str) -> float | None:
        return self._data.get(validate_key(key))

    async def set(self, key: str, timestamp: float) -> None:
        self._data[validate_key(key)] = timestamp

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def entries(self) -> dict[str, float]:
        return dict(self._data)

    @contextlib.asynccontextmanager
    async def lock(self, key: str) -> AsyncIterator[None]:
        async with self._locks[validate_key(key)]:
            yield


class FileStateStore(StateStore):
    """One small file per key inside a single directory.

    The file body is the epoch timestamp. Writes go through a temp file and
    ``os.replace`` so readers never see a partial value. Locking combines an
    ``asyncio.Lock`` (same process) with ``fcntl.flock`` on a hidden sibling
    lock file (concurrent runs). Removing the directory resets all cooldowns.
    """

    def __init__(self, directory: str | Path) -> None:
        self._dir = Path(directory)
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @property
    def directory(self) -> Path:
        return self._dir

    def _path(self, key: str) -> Path:
        return self._dir / validate_key(key)

    def _ensure_dir(self) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)

    async def get(self, key: str) -> float | None:
        path = self._path(key)
        try:
            raw = path.read_text().strip()
        except FileNotFoundError:
            return None
        except OSError:
            logger.warning("state_read_failed", key=key, path=str(path))
            return None
        try:
            return float(raw)
        except ValueError:
            logger.warning("state_corrupt", key=key, value=raw[:40])
            return None

    async def set(self, key: str, timestamp: float) -> None:
        path = self._path(key)
        self._ensure_dir()
        fd, tmp = tempfile.mkstemp(dir=self._dir, prefix=".tmp-")
        try:
            with os.fdopen(fd, "w") as f:
                f.write(f"{timestamp:.6f}\n")
            os.replace(tmp, path)
        except BaseException:
            with contextlib.suppress(FileNotFoundError):
                os.unlink(tmp)
            raise

    async def delete(self, key: str) -> None:
        with contextlib.suppress(FileNotFoundError):
            self._path(key).unlink()

    async def entries(self) -> dict[str, float]:
        if not self._dir.is_dir():
            return {}
        result: dict[str, float] = {}
        for path in sorted(self._dir.iterdir()):
            if path.name.startswith(".") or not path.is_file():
                continue
            ts = await self.get(path.name)
            if ts is not None:
                result[path.name] = ts
        return result

    @contextlib.asynccontextmanager
    async def lock(self, key: str) -> AsyncIterator[None]:
        validate_key(key)
        async with self._locks[key]:
            self._ensure_dir()
            with open(self._dir / f".{key}.lock", "a") as lock_file:
                await asyncio.to_thread(fcntl.flock, lock_file.fileno(), fcntl.LOCK_EX)
                try:
                    yield
                finally:
                    fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)
