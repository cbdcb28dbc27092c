"""
File-based TTL cache for extractor metadata lookups.

Each entry is one JSON file in the cache directory. Expired entries are
removed lazily when read and by a ``cleanup()`` sweep run once at process
start. The cache is an optimization only: every failure degrades to a miss.
"""

import hashlib
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Any, Callable

from pydantic import BaseModel, ValidationError, model_validator
from starlette.concurrency import run_in_threadpool

logger = logging.getLogger(__name__)

DEFAULT_TTL = 24 * 60 * 60  # seconds

_ENTRY_SUFFIX = ".json"


class CacheEntry(BaseModel):
    """
    One cached value as stored on disk.

    Attributes:
        key: The caller's cache key
        data: JSON-serializable payload
        created_at: Unix timestamp of the write
        expires_at: Unix timestamp after which the entry is absent
    """

    key: str
    data: Any
    created_at: float
    expires_at: float

    @model_validator(mode="after")
    def _check_expiry(self) -> "CacheEntry":
        if self.expires_at <= self.created_at:
            raise ValueError("expires_at must be later than created_at")
        return self

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


class FileCache:
    """
    Key/value store of JSON-serializable values with per-entry expiry.

    Storage file names are SHA-256 hashes of the full key, so distinct keys
    never share a file. Writes go to a temporary file that is renamed into
    place, so a reader never sees a partial entry. There is no cross-process
    locking; concurrent writers to the same key race and the last rename wins.
    """

    def __init__(
        self,
        cache_dir: str | Path,
        default_ttl: float = DEFAULT_TTL,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the cache and create its directory if missing.

        Args:
            cache_dir: Directory that holds the entry files
            default_ttl: Lifetime in seconds used when ``set`` gets no ttl
            clock: Source of the current Unix time
        """
        self._dir = Path(cache_dir)
        self._default_ttl = default_ttl
        self._clock = clock
        self._hits = 0
        self._misses = 0
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning(f"Cannot create cache directory {self._dir}: {e}")

    @property
    def directory(self) -> Path:
        return self._dir

    @property
    def default_ttl(self) -> float:
        return self._default_ttl

    def _entry_path(self, key: str) -> Path:
        digest = hashlib.sha256(key.encode()).hexdigest()
        return self._dir / f"{digest}{_ENTRY_SUFFIX}"

    def _remove(self, path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Failed to remove cache file {path.name}: {e}")

    def _read_entry(self, path: Path) -> CacheEntry | None:
        """Load an entry file; corrupted files are deleted and read as None."""
        try:
            content = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning(f"Failed to read cache file {path.name}: {e}")
            return None

        try:
            return CacheEntry.model_validate_json(content)
        except ValidationError:
            logger.warning(f"Removing corrupted cache file {path.name}")
            self._remove(path)
            return None

    def _load_live(self, path: Path) -> CacheEntry | None:
        entry = self._read_entry(path)
        if entry is not None and entry.is_expired(self._clock()):
            logger.debug(f"Cache entry expired: {path.name}")
            self._remove(path)
            return None
        return entry

    async def get(self, key: str) -> Any | None:
        """
        Get the cached value for ``key``.

        Args:
            key: Cache key

        Returns:
            The stored value, or None if absent, corrupted or expired
        """
        entry = await run_in_threadpool(self._load_live, self._entry_path(key))

        if entry is None:
            self._misses += 1
            return None

        self._hits += 1
        logger.debug(f"Cache hit for key: {key}")
        return entry.data

    def _write(self, path: Path, payload: str) -> None:
        """Write an entry file atomically via a renamed temporary file."""
        tmp_name = None
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self._dir,
                prefix=".tmp-",
                suffix=".part",
                delete=False,
            ) as handle:
                tmp_name = handle.name
                handle.write(payload)
            os.replace(tmp_name, path)
            tmp_name = None
        finally:
            if tmp_name is not None:
                self._remove(Path(tmp_name))

    async def set(self, key: str, data: Any, ttl: float | None = None) -> None:
        """
        Store ``data`` under ``key`` for ``ttl`` seconds.

        Overwrites any existing entry. Write failures are logged, not raised.

        Args:
            key: Cache key
            data: JSON-serializable value
            ttl: Lifetime in seconds; defaults to the cache's default_ttl
        """
        ttl = self._default_ttl if ttl is None else ttl
        if ttl <= 0:
            raise ValueError("ttl must be positive")

        now = self._clock()
        try:
            payload = CacheEntry(
                key=key, data=data, created_at=now, expires_at=now + ttl
            ).model_dump_json(indent=2)
            await run_in_threadpool(self._write, self._entry_path(key), payload)
            logger.debug(f"Cache set for key: {key}")
        except (OSError, TypeError, ValueError) as e:
            logger.warning(f"Failed to write cache entry for key {key}: {e}")

    async def delete(self, key: str) -> None:
        """Remove the entry for ``key`` if present."""
        await run_in_threadpool(self._remove, self._entry_path(key))

    def _entry_files(self) -> list[Path]:
        try:
            return [p for p in self._dir.iterdir() if p.suffix == _ENTRY_SUFFIX]
        except OSError:
            return []

    def _remove_all(self) -> int:
        files = self._entry_files()
        for path in files:
            self._remove(path)
        return len(files)

    async def clear(self) -> None:
        """Remove every entry in the store."""
        removed = await run_in_threadpool(self._remove_all)
        logger.info(f"Cache cleared: {removed} entries removed")

    def _sweep(self) -> int:
        now = self._clock()
        removed = 0
        for path in self._entry_files():
            try:
                entry = CacheEntry.model_validate_json(path.read_bytes())
            except FileNotFoundError:
                continue
            except (OSError, ValidationError):
                self._remove(path)
                removed += 1
                continue

            if entry.is_expired(now):
                self._remove(path)
                removed += 1
        return removed

    async def cleanup(self) -> int:
        """
        Remove every expired or unreadable entry.

        Returns:
            Number of entries removed
        """
        removed = await run_in_threadpool(self._sweep)
        if removed:
            logger.info(f"Cache cleanup removed {removed} entries")
        return removed

    async def get_stats(self) -> dict[str, Any]:
        """
        Get cache statistics.

        Returns:
            Dictionary with entry count, hits, misses and hit rate
        """
        total = self._hits + self._misses
        hit_rate = self._hits / total if total > 0 else 0
        return {
            "size": len(await run_in_threadpool(self._entry_files)),
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": hit_rate,
        }
