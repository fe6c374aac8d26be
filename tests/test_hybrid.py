"""Tests for the hybrid coordinator: store-first writes, cache mirroring, fallback."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from friday.config import FridayConfig, MemoryConfig, UpstashConfig
from friday.errors import ConfigurationError, RemoteUnavailableError
from friday.memory.cache import UpstashCache
from friday.memory.hybrid import HybridCoordinator, installation_id
from friday.memory.store import ProjectIndex


async def make_memory(config: FridayConfig, cache=None) -> HybridCoordinator:
    memory = HybridCoordinator(config, cache=cache)
    await memory.initialize()
    return memory


class TestConstruction:
    def test_installation_id_is_stable(self, config: FridayConfig):
        first = HybridCoordinator(config)
        second = HybridCoordinator(config)
        assert first.installation_id == second.installation_id
        assert len(first.installation_id) == 16

    def test_installation_id_differs_per_project(self, tmp_path: Path):
        assert installation_id(tmp_path / "a") != installation_id(tmp_path / "b")

    def test_invalid_config_rejected(self, project: Path):
        config = FridayConfig(project_root=project, memory=MemoryConfig(capacity=1))
        with pytest.raises(ConfigurationError, match="capacity"):
            HybridCoordinator(config)

    def test_upstash_config_builds_client(self, project: Path):
        config = FridayConfig(
            project_root=project,
            upstash=UpstashConfig(url="https://example.upstash.io", token="abcdefghijkl"),
        )
        memory = HybridCoordinator(config)
        assert isinstance(memory.cache.tier, UpstashCache)

    def test_no_upstash_is_store_only(self, config: FridayConfig):
        assert HybridCoordinator(config).is_cache_enabled() is False


class TestAvailability:
    @pytest.mark.asyncio
    async def test_single_ping(self, config, fake_cache):
        memory = await make_memory(config, fake_cache)
        await memory.write("decision", "d1", "text")
        await memory.search("text")
        await memory.read_index()
        assert fake_cache.pings == 1
        assert memory.is_cache_enabled() is True

    @pytest.mark.asyncio
    async def test_dead_cache_falls_back(self, config, dead_cache):
        memory = await make_memory(config, dead_cache)
        assert memory.is_cache_enabled() is False
        assert dead_cache.closed is True

        path = await memory.write("implementation", "auth", "JWT auth")
        assert path.read_text(encoding="utf-8") == "JWT auth"
        assert dead_cache.data == {}

    @pytest.mark.asyncio
    async def test_ping_exception_falls_back(self, config, fake_cache):
        async def boom():
            raise RuntimeError("dns failure")

        fake_cache.ping = boom
        memory = await make_memory(config, fake_cache)
        assert memory.is_cache_enabled() is False

    @pytest.mark.asyncio
    async def test_store_only_matches_hybrid_results(self, tmp_path: Path, fake_cache):
        async def run(root: Path, cache) -> list[tuple[str, str]]:
            root.mkdir()
            memory = await make_memory(FridayConfig(project_root=root), cache)
            await memory.write("implementation", "auth", "JWT authentication")
            await memory.write("decision", "db", "PostgreSQL for authentication data")
            results = await memory.search("authentication")
            return sorted((r.title, r.content) for r in results if r.source == "store")

        assert await run(tmp_path / "plain", None) == await run(tmp_path / "hybrid", fake_cache)

    @pytest.mark.asyncio
    async def test_context_manager_closes_cache(self, config, fake_cache):
        async with HybridCoordinator(config, cache=fake_cache) as memory:
            assert await memory.is_initialized() is True
        assert fake_cache.closed is True

    @pytest.mark.asyncio
    async def test_cache_health(self, config, fake_cache):
        memory = await make_memory(config, fake_cache)
        assert await memory.cache_health() == (True, None)
        plain = await make_memory(config)
        ok, reason = await plain.cache_health()
        assert ok is False
        assert "not configured" in reason


class TestWrites:
    @pytest.mark.asyncio
    async def test_write_mirrors_to_cache(self, config, fake_cache):
        memory = await make_memory(config, fake_cache)
        path = await memory.write("implementation", "auth-jwt", "JWT auth")
        assert path == config.memory_root / "implementations" / "auth-jwt.md"
        assert fake_cache.data[memory.keys.memory("implementation", "auth-jwt")] == "JWT auth"

    @pytest.mark.asyncio
    async def test_mirror_uses_slug(self, config, fake_cache):
        memory = await make_memory(config, fake_cache)
        await memory.write("decision", "Use Redis", "Redis for sessions")
        assert memory.keys.memory("decision", "Use-Redis") in fake_cache.data

    @pytest.mark.asyncio
    async def test_mirror_failure_does_not_fail_write(self, config, fake_cache, caplog):
        memory = await make_memory(config, fake_cache)
        fake_cache.fail_all = True
        path = await memory.write("issue", "bug-1", "stack overflow")
        assert path.read_text(encoding="utf-8") == "stack overflow"
        assert "Mirror of issue/bug-1" in caplog.text

    @pytest.mark.asyncio
    async def test_store_failure_propagates(self, config, fake_cache):
        memory = await make_memory(config, fake_cache)
        with pytest.raises(ValueError):
            await memory.write("recipe", "x", "text")
        assert fake_cache.data == {}

    @pytest.mark.asyncio
    async def test_concurrent_writes_same_record_stay_consistent(self, config, fake_cache):
        memory = await make_memory(config, fake_cache)
        contents = [f"version {i}" for i in range(10)]
        await asyncio.gather(*(memory.write("decision", "d1", c) for c in contents))

        on_disk = (config.memory_root / "decisions" / "d1.md").read_text(encoding="utf-8")
        assert on_disk in contents
        assert fake_cache.data[memory.keys.memory("decision", "d1")] == on_disk
        assert memory._record_locks == {}

    @pytest.mark.asyncio
    async def test_write_index_mirrors(self, config, fake_cache):
        memory = await make_memory(config, fake_cache)
        await memory.write_index(ProjectIndex(name="shop", type="web"))
        mirrored = await memory.cache.get_project_index()
        assert "# Memory Index" in mirrored


class TestReads:
    @pytest.mark.asyncio
    async def test_read_index_prefers_store(self, config, fake_cache):
        memory = await make_memory(config, fake_cache)
        await memory.cache.store_project_index("stale mirror")
        await memory.store.write_index(ProjectIndex(name="shop", type="web"))
        assert "shop" in await memory.read_index()

    @pytest.mark.asyncio
    async def test_read_index_falls_back_to_cache(self, config, fake_cache):
        memory = await make_memory(config, fake_cache)
        await memory.cache.store_project_index("# Memory Index\n\nfrom cache")
        assert await memory.read_index() == "# Memory Index\n\nfrom cache"

    @pytest.mark.asyncio
    async def test_read_index_cache_error_is_none(self, config, fake_cache):
        memory = await make_memory(config, fake_cache)
        fake_cache.fail_all = True
        assert await memory.read_index() is None

    @pytest.mark.asyncio
    async def test_search_merges_store_and_cache(self, config, fake_cache):
        memory = await make_memory(config, fake_cache)
        await memory.write("implementation", "auth", "JWT authentication")
        # a mirror written by another checkout of the same project
        fake_cache.data[memory.keys.memory("decision", "remote")] = "authentication via SSO"

        results = await memory.search("authentication")
        assert {r.source for r in results} == {"store", "cache"}
        remote = next(r for r in results if r.title == "remote")
        assert remote.category == "decision"
        assert remote.path == memory.keys.memory("decision", "remote")
        assert [r.relevance for r in results] == sorted((r.relevance for r in results), reverse=True)
        assert [(r.source, r.title) for r in results].count(("store", "auth")) == 1
        assert ("cache", "auth") not in [(r.source, r.title) for r in results]

    @pytest.mark.asyncio
    async def test_search_cache_skips_mirrors_of_stored_records(self, config, fake_cache):
        memory = await make_memory(config, fake_cache)
        await memory.write("implementation", "auth-jwt", "JWT authentication")
        assert memory.keys.memory("implementation", "auth-jwt") in fake_cache.data
        assert await memory.search_cache("authentication") == []

    @pytest.mark.asyncio
    async def test_lock_entries_released_after_write(self, config):
        memory = await make_memory(config)
        await memory.write("issue", "a", "one")
        await memory.write("issue", "b", "two")
        assert memory._record_locks == {}

    @pytest.mark.asyncio
    async def test_search_limit(self, config):
        memory = await make_memory(config)
        for i in range(5):
            await memory.write("issue", f"bug-{i}", f"timeout in worker {i}")
        assert len(await memory.search("timeout", limit=3)) == 3

    @pytest.mark.asyncio
    async def test_search_survives_cache_failure(self, config, fake_cache):
        memory = await make_memory(config, fake_cache)
        await memory.write("implementation", "auth", "JWT authentication")
        fake_cache.fail_all = True
        results = await memory.search("authentication")
        assert [r.source for r in results] == ["store"]


class TestSync:
    @pytest.mark.asyncio
    async def test_sync_without_cache_raises(self, config):
        memory = await make_memory(config)
        with pytest.raises(RemoteUnavailableError):
            await memory.sync_all_to_cache()

    @pytest.mark.asyncio
    async def test_sync_all(self, config, fake_cache):
        memory = await make_memory(config, fake_cache)
        await memory.store.write("implementation", "a", "alpha")
        await memory.store.write("decision", "b", "beta")
        await memory.store.write_index(ProjectIndex(name="shop", type="web"))

        result = await memory.sync_all_to_cache()
        assert result.succeeded == 2
        assert result.errors == []
        assert fake_cache.data[memory.keys.memory("decision", "b")] == "beta"
        assert memory.keys.index() in fake_cache.data

    @pytest.mark.asyncio
    async def test_partial_failure_reported(self, config, fake_cache):
        memory = await make_memory(config, fake_cache)
        await memory.store.write("issue", "a", "one")
        await memory.store.write("issue", "b", "two")
        await memory.store.write("issue", "c", "three")
        fake_cache.fail_keys.add(memory.keys.memory("issue", "b"))

        result = await memory.sync_all_to_cache()
        assert result.succeeded == 2
        assert len(result.errors) == 1
        assert "issue/b" in result.errors[0]


class TestStats:
    @pytest.mark.asyncio
    async def test_store_only(self, config):
        memory = await make_memory(config)
        await memory.write("issue", "a", "x")
        stats = await memory.stats()
        assert stats.mode == "store-only"
        assert stats.store["issues"] == 1
        assert stats.cache is None

    @pytest.mark.asyncio
    async def test_hybrid(self, config, fake_cache):
        memory = await make_memory(config, fake_cache)
        await memory.write("issue", "a", "x")
        stats = await memory.stats()
        assert stats.mode == "hybrid"
        assert stats.cache["memory_keys"] == 1
