"""Two-tier (memory + file) cache for ESI entities with TTL expiry."""

from __future__ import annotations

import asyncio
import logging
import re
from collections import OrderedDict
from collections.abc import Awaitable, Callable, Hashable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Generic, TypeVar

from pydantic import BaseModel, ValidationError

from utils.exceptions import CacheError

logger = logging.getLogger(__name__)

T = TypeVar("T")
ModelT = TypeVar("ModelT", bound=BaseModel)

DEFAULT_MEMORY_CAPACITY = 512
STRUCTURE_TTL = timedelta(days=7)

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


def _utc_now() -> datetime:
    return datetime.now(UTC)


class CacheEntry(BaseModel, Generic[T]):
    """A cached value with the time it was stored."""

    data: T
    timestamp: datetime

    def is_valid(self, ttl: timedelta, now: datetime) -> bool:
        """Whether the entry is still inside its TTL at ``now``."""
        return now - self.timestamp < ttl


class MemoryTier:
    """Bounded in-process LRU store.

    Eviction happens synchronously inside ``put``: the least recently used
    entries are dropped, ``on_evict`` is called for each of them and the
    evicted pairs are returned to the caller.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_MEMORY_CAPACITY,
        on_evict: Callable[[Hashable, CacheEntry], None] | None = None,
    ):
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self._on_evict = on_evict
        self._entries: OrderedDict[Hashable, CacheEntry] = OrderedDict()

    def get(self, key: Hashable) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is not None:
            self._entries.move_to_end(key)
        return entry

    def put(
        self, key: Hashable, entry: CacheEntry
    ) -> list[tuple[Hashable, CacheEntry]]:
        """Store an entry, evicting the oldest ones beyond capacity.

        Returns:
            The (key, entry) pairs that were evicted, oldest first
        """
        self._entries[key] = entry
        self._entries.move_to_end(key)

        evicted: list[tuple[Hashable, CacheEntry]] = []
        while len(self._entries) > self.capacity:
            old_key, old_entry = self._entries.popitem(last=False)
            evicted.append((old_key, old_entry))
            logger.debug("Evicted %s from memory cache", old_key)
            if self._on_evict is not None:
                self._on_evict(old_key, old_entry)
        return evicted

    def pop(self, key: Hashable) -> CacheEntry | None:
        return self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def keys(self) -> list[Hashable]:
        """Keys from least to most recently used."""
        return list(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class FileTier(Generic[ModelT]):
    """One JSON file per entity holding ``{"data": ..., "timestamp": ...}``.

    The directory is created on the first write. Files that cannot be read
    or do not validate against the model are deleted and reported as misses.
    """

    def __init__(self, directory: str | Path, model: type[ModelT]):
        self.directory = Path(directory)
        self.model = model
        self.entry_type = CacheEntry[model]

    def path_for(self, key: Hashable) -> Path:
        name = _UNSAFE_KEY_CHARS.sub("_", str(key))
        return self.directory / f"{name}.json"

    def read(self, key: Hashable) -> CacheEntry[ModelT] | None:
        path = self.path_for(key)
        if not path.exists():
            return None
        try:
            raw = path.read_text(encoding="utf-8")
            return self.entry_type.model_validate_json(raw)
        except (OSError, UnicodeDecodeError, ValidationError) as e:
            logger.warning("Discarding corrupt cache file %s: %s", path.name, e)
            self.delete(key)
            return None

    def write(self, key: Hashable, entry: CacheEntry[ModelT]) -> None:
        """Atomically write an entry, creating the directory if needed.

        Raises:
            CacheError: If the file cannot be written
        """
        path = self.path_for(key)
        tmp_path = path.with_suffix(".tmp")
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(entry.model_dump_json(), encoding="utf-8")
            tmp_path.replace(path)
        except OSError as e:
            raise CacheError(f"Failed to write {path}: {e}") from e

    def delete(self, key: Hashable) -> bool:
        path = self.path_for(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True

    def clear(self) -> int:
        """Delete every cache file.

        Returns:
            Number of files removed
        """
        if not self.directory.exists():
            return 0
        removed = 0
        for path in self.directory.glob("*.json"):
            path.unlink(missing_ok=True)
            removed += 1
        return removed


class TieredCache(Generic[ModelT]):
    """Per-entity cache reading memory, then file, before the caller's fetch.

    Writes go to both tiers. Every read checks the entry against the TTL,
    so an expired entry is dropped and reported as a miss.

    Example:
        ```python
        cache = TieredCache(FileTier(path, EveStructure), ttl=timedelta(days=7))
        structure = await cache.get(structure_id)
        if structure is None:
            structure = await fetch()
            await cache.put(structure_id, structure)
        ```
    """

    def __init__(
        self,
        file_tier: FileTier[ModelT],
        ttl: timedelta = STRUCTURE_TTL,
        memory: MemoryTier | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        """Initialize the cache.

        Args:
            file_tier: Persistent tier
            ttl: Maximum age of a served entry
            memory: Memory tier (a default-capacity LRU if omitted)
            clock: Source of timezone-aware "now"
        """
        self.file_tier = file_tier
        self.ttl = ttl
        self.memory = memory if memory is not None else MemoryTier()
        self._clock = clock
        self._lock = asyncio.Lock()

    async def get(self, key: Hashable) -> ModelT | None:
        """Return the cached value, or None on a miss or expiry."""
        async with self._lock:
            now = self._clock()

            entry = self.memory.get(key)
            if entry is not None:
                if entry.is_valid(self.ttl, now):
                    logger.debug("Memory cache hit for %s", key)
                    return entry.data
                self.memory.pop(key)

            entry = self.file_tier.read(key)
            if entry is None:
                logger.debug("Cache miss for %s", key)
                return None
            if not entry.is_valid(self.ttl, now):
                logger.debug("Cache entry for %s expired at %s", key, entry.timestamp)
                self.file_tier.delete(key)
                return None

            logger.debug("File cache hit for %s", key)
            self.memory.put(key, entry)
            return entry.data

    async def put(self, key: Hashable, value: ModelT) -> None:
        """Write a value through to both tiers."""
        async with self._lock:
            entry = self.file_tier.entry_type(data=value, timestamp=self._clock())
            self.memory.put(key, entry)
            try:
                self.file_tier.write(key, entry)
            except CacheError:
                logger.exception("Failed to persist cache entry for %s", key)

    async def get_or_fetch(
        self, key: Hashable, fetch: Callable[[], Awaitable[ModelT]]
    ) -> ModelT:
        """Return the cached value or fetch, store and return a fresh one.

        Errors raised by ``fetch`` propagate; nothing is stored in that case.
        """
        cached = await self.get(key)
        if cached is not None:
            return cached
        value = await fetch()
        await self.put(key, value)
        return value

    async def invalidate(self, key: Hashable) -> None:
        async with self._lock:
            self.memory.pop(key)
            self.file_tier.delete(key)

    async def clear_all(self) -> None:
        """Remove every entry from both tiers."""
        async with self._lock:
            self.memory.clear()
            removed = self.file_tier.clear()
        logger.info(
            "Cleared cache at %s (%d files)", self.file_tier.directory, removed
        )
