"""MCP tools for project memory access.

These coroutines are what the request-routing layer exposes to the agent.
Each returns display text; the router is responsible for wrapping it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Awaitable, Callable

from friday.errors import RemoteUnavailableError
from friday.memory.cascade import format_smart_search

if TYPE_CHECKING:
    from friday.memory.cascade import CascadeController
    from friday.memory.hybrid import HybridCoordinator


def get_memory_tools(
    memory: HybridCoordinator, cascade: CascadeController
) -> dict[str, Callable[..., Awaitable[str]]]:
    """Return a dict of tool_name -> coroutine function for memory operations."""

    async def search(query: str, max_results: int = 10) -> str:
        """Ranked search over stored records (and cache mirrors when available)."""
        results = await memory.search(query, limit=max_results)
        mode = "Hybrid (store + cache)" if memory.is_cache_enabled() else "Store-only"
        lines = [f'Search results for: "{query}"', "", f"Found {len(results)} result(s)", f"Mode: {mode}", ""]
        if not results:
            lines += [
                "No matches found.",
                "",
                "Suggestions:",
                "- Try different keywords",
                "- Use broader search terms",
            ]
        for i, r in enumerate(results, 1):
            lines.append(f"{i}. [{r.source.upper()}] {round(r.relevance * 100)}% match")
            if r.category:
                lines.append(f"   Type: {r.category}")
            if r.path:
                lines.append(f"   Path: {r.path}")
            lines.append(f"   {r.content[:150].replace(chr(10), ' ')}...")
            lines.append("")
        return "\n".join(lines)

    async def smart_search(query: str, feature_context: str | None = None) -> str:
        """Search local docs, then the cache, then library docs, stopping early when possible."""
        return format_smart_search(await cascade.search(query, feature_context))

    async def sync() -> str:
        """Mirror every stored record into the cache tier."""
        try:
            result = await memory.sync_all_to_cache()
        except RemoteUnavailableError as e:
            return (
                f"Sync failed: {e}\n\n"
                "To enable sync set UPSTASH_REDIS_REST_URL and UPSTASH_REDIS_REST_TOKEN."
            )
        lines = [f"Synced {result.succeeded} record(s)"]
        if result.errors:
            lines += ["", "Errors encountered:"]
            lines += [f"   - {err}" for err in result.errors]
        return "\n".join(lines)

    async def read_index() -> str:
        """Read the project INDEX.md (store first, cache mirror as fallback)."""
        content = await memory.read_index()
        return content or "(no project index yet; run setup first)"

    async def remember(category: str, record_id: str, content: str) -> str:
        """Create or replace a memory record (implementation | decision | issue)."""
        path = await memory.write(category, record_id, content)
        return f"Saved {category} {path.stem} ({len(content)} chars)"

    async def memory_stats() -> str:
        """Record counts per category and the cache mode."""
        stats = await memory.stats()
        lines = [f"Mode: {stats.mode}"]
        lines += [f"- {name}: {count}" for name, count in stats.store.items()]
        if stats.cache:
            lines.append(
                f"- cache: {stats.cache['memory_keys']} mirrors, {stats.cache['cache_keys']} cached queries"
            )
        return "\n".join(lines)

    return {
        "search": search,
        "smart_search": smart_search,
        "sync": sync,
        "read_index": read_index,
        "remember": remember,
        "memory_stats": memory_stats,
    }
