"""Hybrid memory coordinator: durable store always, remote cache when usable.

Writes land in the record store first and are then mirrored to the cache
on a best-effort basis. Reads prefer the store. Whether the cache is usable
is decided once, by a single ping in :meth:`HybridCoordinator.initialize`,
and never re-probed for the life of the coordinator.
"""

from __future__ import annotations

import asyncio
import base64
import contextlib
import hashlib
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from friday.config import FridayConfig, validate_config
from friday.errors import ConfigurationError, RemoteUnavailableError
from friday.memory import relevance
from friday.memory.cache import CacheKeys, CacheStore, UpstashCache
from friday.memory.store import (
    CATEGORIES,
    ProjectIndex,
    Record,
    RecordStore,
    render_index,
    slugify,
)

if TYPE_CHECKING:
    from friday.memory.cache import CacheTier

logger = logging.getLogger(__name__)


@dataclass
class SearchResult:
    """One ranked hit. Built per query, never persisted."""

    source: str
    content: str
    relevance: float
    path: str | None = None
    category: str | None = None
    title: str = ""


@dataclass
class SyncResult:
    """Outcome of a store → cache sync; failures are per record."""

    succeeded: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass
class MemoryStats:
    store: dict[str, int]
    mode: str
    cache: dict[str, int] | None = None


def installation_id(project_root: Path) -> str:
    """Stable 16-char namespace for one installation's cache keys."""
    digest = hashlib.sha256(str(project_root.resolve()).encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii")[:16]


class HybridCoordinator:
    """One read/write/search API over the record store and the cache tier.

    Construct once per process and pass it to whoever needs memory; call
    :meth:`close` (or use ``async with``) at shutdown.
    """

    def __init__(self, config: FridayConfig, cache: CacheTier | None = None) -> None:
        problems = validate_config(config)
        if problems:
            raise ConfigurationError("; ".join(problems))

        self.config = config
        self.store = RecordStore(config.memory_root)
        self.installation_id = installation_id(config.project_root)
        self.keys = CacheKeys(self.installation_id)

        if cache is None and config.upstash is not None:
            cache = UpstashCache(config.upstash)
        self._cache: CacheStore | None = None
        if cache is not None:
            self._cache = CacheStore(
                cache,
                self.keys,
                session_ttl=config.search.session_ttl,
                query_ttl=config.search.query_cache_ttl,
            )
        self._record_locks: dict[tuple[str, str], asyncio.Lock] = {}
        self._lock_users: dict[tuple[str, str], int] = {}

    async def __aenter__(self) -> HybridCoordinator:
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ── Lifecycle ─────────────────────────────────────────────

    async def initialize(self) -> None:
        """Create the store tree and decide, once, whether the cache is usable."""
        await self.store.initialize()

        if self._cache is None:
            logger.info("No cache tier configured, using store-only memory")
            return

        try:
            alive = await self._cache.tier.ping()
        except Exception as e:
            logger.debug("Cache ping raised: %s", e)
            alive = False
        if not alive:
            logger.warning("Cache tier unreachable, falling back to store-only memory")
            await self._drop_cache()
        else:
            logger.info("Cache tier connected (installation %s)", self.installation_id)

    async def close(self) -> None:
        if self._cache is not None:
            await self._cache.tier.close()

    async def _drop_cache(self) -> None:
        cache, self._cache = self._cache, None
        if cache is not None:
            try:
                await cache.tier.close()
            except Exception as e:
                logger.debug("Error closing cache tier: %s", e)

    async def is_initialized(self) -> bool:
        return await self.store.is_initialized()

    def is_cache_enabled(self) -> bool:
        return self._cache is not None

    @property
    def cache(self) -> CacheStore | None:
        """The active cache helpers, or None in store-only mode."""
        return self._cache

    async def cache_health(self) -> tuple[bool, str | None]:
        """Probe the cache now (explicit request; not used by read paths)."""
        if self._cache is None:
            return False, "Cache tier not configured or unavailable"
        try:
            return await self._cache.tier.ping(), None
        except Exception as e:
            return False, str(e)

    # ── Writes ────────────────────────────────────────────────

    @contextlib.asynccontextmanager
    async def _record_lock(self, category: str, record_id: str) -> AsyncIterator[None]:
        """Hold the per-record lock; the entry is dropped once nobody holds or waits on it."""
        key = (category, record_id)
        if key not in self._record_locks:
            self._record_locks[key] = asyncio.Lock()
            self._lock_users[key] = 0
        lock = self._record_locks[key]
        self._lock_users[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if self._lock_users[key] == 0:
                del self._record_locks[key]
                del self._lock_users[key]

    async def write(self, category: str, record_id: str, content: str) -> Path:
        """Durable write (errors propagate), then best-effort cache mirror."""
        async with self._record_lock(category, slugify(record_id)):
            path = await self.store.write(category, record_id, content)
            if self._cache is not None:
                try:
                    await self._cache.store_memory(category, path.stem, content)
                except Exception as e:
                    logger.warning("Mirror of %s/%s to cache failed: %s", category, path.stem, e)
        return path

    async def write_index(self, project: ProjectIndex) -> Path:
        path = await self.store.write_index(project)
        if self._cache is not None:
            try:
                await self._cache.store_project_index(render_index(project))
            except Exception as e:
                logger.warning("Mirror of project index to cache failed: %s", e)
        return path

    async def create_current_state(self, project_name: str, project_type: str) -> Path:
        return await self.store.create_current_state(project_name, project_type)

    async def update_current_state(self, focus: str | None = None) -> None:
        await self.store.update_current_state(focus=focus)

    # ── Reads ─────────────────────────────────────────────────

    async def read_index(self) -> str | None:
        """Store first; the cache mirror only when the store has no index."""
        text = await self.store.read_index()
        if text:
            return text
        if self._cache is not None:
            try:
                return await self._cache.get_project_index()
            except Exception as e:
                logger.warning("Cache index lookup failed: %s", e)
        return None

    async def read_current_state(self) -> str | None:
        return await self.store.read_current_state()

    async def list_all(self) -> list[Record]:
        return await self.store.list_all()

    async def search(self, query: str, limit: int = 10) -> list[SearchResult]:
        """Substring hits from the store (and cache mirrors), ranked by relevance."""
        results: list[SearchResult] = []

        for record in await self.store.search(query):
            results.append(
                SearchResult(
                    source="store",
                    content=record.content,
                    relevance=relevance.score(query, record.content),
                    path=str(record.path),
                    category=record.category,
                    title=record.id,
                )
            )

        results.extend(await self.search_cache(query))

        results.sort(key=lambda r: r.relevance, reverse=True)
        return results[:limit]

    async def search_cache(self, query: str) -> list[SearchResult]:
        """Score cache mirrors containing *query*; empty when the cache is off or failing.

        Mirrors of records that exist in the local store are skipped: the
        store already serves them, and one record must not count twice.
        """
        if self._cache is None:
            return []
        try:
            hits = await self._cache.search_memory(query)
        except Exception as e:
            logger.warning("Cache search failed, using store results only: %s", e)
            return []

        entries = []
        for key, content in hits:
            parsed = self.keys.parse_memory(key)
            category, record_id = parsed if parsed else (None, key)
            entries.append((key, content, category, record_id))
        stored = await asyncio.to_thread(
            self._stored_records, [(category, record_id) for _, _, category, record_id in entries]
        )

        results = []
        for key, content, category, record_id in entries:
            if (category, record_id) in stored:
                continue
            results.append(
                SearchResult(
                    source="cache",
                    content=content,
                    relevance=relevance.score(query, content),
                    path=key,
                    category=category,
                    title=record_id,
                )
            )
        return results

    def _stored_records(self, candidates: list[tuple[str | None, str]]) -> set[tuple[str | None, str]]:
        """The (category, id) pairs among *candidates* that have a file in the store."""
        return {
            (category, record_id)
            for category, record_id in candidates
            if category in CATEGORIES and self.store.record_path(category, record_id).is_file()
        }

    # ── Sync & stats ──────────────────────────────────────────

    async def sync_all_to_cache(self) -> SyncResult:
        """Mirror every record, one at a time; collect failures instead of aborting.

        Raises RemoteUnavailableError when there is no usable cache tier.
        """
        if self._cache is None:
            raise RemoteUnavailableError("Cache tier not configured or unavailable")

        result = SyncResult()
        for record in await self.store.list_all():
            try:
                await self._cache.store_memory(record.category, record.id, record.content)
                result.succeeded += 1
            except Exception as e:
                result.errors.append(f"Failed to sync {record.category}/{record.id}: {e}")

        try:
            index = await self.store.read_index()
            if index:
                await self._cache.store_project_index(index)
        except Exception as e:
            result.errors.append(f"Failed to sync index: {e}")

        logger.info("Synced %d record(s) to cache, %d error(s)", result.succeeded, len(result.errors))
        return result

    async def stats(self) -> MemoryStats:
        stats = MemoryStats(
            store=await self.store.stats(),
            mode="hybrid" if self._cache is not None else "store-only",
        )
        if self._cache is not None:
            try:
                stats.cache = await self._cache.stats()
            except Exception as e:
                logger.warning("Cache stats unavailable: %s", e)
        return stats
