"""Cascading search: local documents → cache tier → external catalog.

Each tier is only consulted when everything gathered so far is not
sufficient. Sufficiency needs several strong hits, not one, so that a single
coincidental match cannot stop the search early.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from friday.memory import relevance
from friday.memory.hybrid import SearchResult
from friday.memory.knowledge import KnowledgeCatalog

if TYPE_CHECKING:
    from friday.config import SearchConfig
    from friday.memory.hybrid import HybridCoordinator

logger = logging.getLogger(__name__)

LOCAL = "local"
CACHE = "cache"
EXTERNAL = "external"

_TIER_LABELS = {LOCAL: "local documents", CACHE: "cache tier", EXTERNAL: "external catalog"}


@dataclass
class SmartSearchResult:
    query: str
    results: list[SearchResult] = field(default_factory=list)
    search_path: list[str] = field(default_factory=list)
    total_results: int = 0
    recommendations: list[str] = field(default_factory=list)


class CascadeController:
    """Escalates a query across tiers until the evidence is sufficient."""

    def __init__(
        self,
        memory: HybridCoordinator,
        catalog: KnowledgeCatalog | None = None,
        settings: SearchConfig | None = None,
    ) -> None:
        self.memory = memory
        self.catalog = catalog or KnowledgeCatalog()
        self.settings = settings or memory.config.search
        self.project_root = memory.config.project_root
        self.memory_root = memory.config.memory_root

    async def search(self, query: str, feature_context: str | None = None) -> SmartSearchResult:
        """Run the cascade for *query*. An empty query is allowed."""
        outcome = SmartSearchResult(query=query)
        logger.info("Smart search: %r", query)

        # 1. Local documents
        outcome.search_path.append(LOCAL)
        local = await self.search_local(query)
        outcome.results.extend(local)
        logger.debug("Local tier: %d result(s)", len(local))
        if self.is_sufficient(outcome.results):
            outcome.recommendations.append("Use existing local patterns and implementations")
            return self._finish(outcome)

        # 2. Cache tier
        outcome.search_path.append(CACHE)
        cached = await self.search_cache(query)
        outcome.results.extend(cached)
        logger.debug("Cache tier: %d result(s)", len(cached))
        if self.is_sufficient(outcome.results):
            outcome.recommendations.append("Review cached implementations from similar projects")
            return self._finish(outcome)

        # 3. External catalog, always the last tier
        outcome.search_path.append(EXTERNAL)
        external = self.search_external(query, feature_context)
        outcome.results.extend(external)
        logger.debug("External tier: %d result(s)", len(external))

        outcome.recommendations.extend(self.recommend(outcome.results))
        return self._finish(outcome)

    def _finish(self, outcome: SmartSearchResult) -> SmartSearchResult:
        outcome.results.sort(key=lambda r: r.relevance, reverse=True)
        outcome.total_results = len(outcome.results)
        logger.info(
            "Smart search done: %d result(s) via %s",
            outcome.total_results,
            " -> ".join(outcome.search_path),
        )
        return outcome

    def is_sufficient(self, results: list[SearchResult]) -> bool:
        strong = [r for r in results if r.relevance >= self.settings.strong_relevance]
        return len(strong) >= self.settings.strong_count

    # ── Tiers ────────────────────────────────────────────────

    async def search_local(self, query: str) -> list[SearchResult]:
        """Score markdown under the memory root, docs/ and the project root."""
        documents = await asyncio.to_thread(self._read_local_documents)
        results = []
        for path, content in documents:
            score = relevance.score(query, content)
            if score > self.settings.min_relevance:
                results.append(
                    SearchResult(
                        source=LOCAL,
                        content=relevance.extract_snippet(content, query),
                        relevance=score,
                        path=self._display_path(path),
                        title=path.stem,
                    )
                )
        results.sort(key=lambda r: r.relevance, reverse=True)
        return results[: self.settings.local_limit]

    async def search_cache(self, query: str) -> list[SearchResult]:
        """Mirrors of records not held locally, above the minimum relevance; empty in store-only mode."""
        results = []
        for hit in await self.memory.search_cache(query):
            if hit.relevance > self.settings.min_relevance:
                hit.content = relevance.extract_snippet(hit.content, query)
                results.append(hit)
        results.sort(key=lambda r: r.relevance, reverse=True)
        return results

    def search_external(self, query: str, feature_context: str | None = None) -> list[SearchResult]:
        """Catalog entries for the query's topic, weighted by library trust."""
        topic = f"{query} {feature_context}" if feature_context else query
        results = []
        for entry in self.catalog.search(topic)[: self.settings.external_limit]:
            summary = self.catalog.get_summary(entry.identifier, query)
            results.append(
                SearchResult(
                    source=EXTERNAL,
                    content=summary.content,
                    relevance=summary.relevance * entry.trust_weight / 10,
                    path=entry.identifier,
                    title=f"{entry.name} Documentation",
                )
            )
        return results

    # ── Local document discovery ─────────────────────────────

    def _local_roots(self) -> list[tuple[Path, bool]]:
        """(directory, recursive) pairs scanned by the local tier."""
        return [
            (self.memory_root, True),
            (self.project_root / "docs", True),
            (self.project_root, False),
        ]

    def _read_local_documents(self) -> list[tuple[Path, str]]:
        seen: set[Path] = set()
        documents = []
        for root, recursive in self._local_roots():
            for path in _find_markdown_files(root, recursive):
                resolved = path.resolve()
                if resolved in seen:
                    continue
                seen.add(resolved)
                try:
                    documents.append((path, path.read_text(encoding="utf-8")))
                except (OSError, UnicodeDecodeError) as e:
                    logger.debug("Skipping unreadable %s: %s", path, e)
        return documents

    def _display_path(self, path: Path) -> str:
        try:
            return str(path.relative_to(self.project_root))
        except ValueError:
            return str(path)

    # ── Recommendations ──────────────────────────────────────

    def recommend(self, results: list[SearchResult]) -> list[str]:
        """Advice derived only from which tiers contributed results."""
        sources = {r.source for r in results}
        recommendations = []
        if LOCAL in sources:
            recommendations.append(
                f"Review local precedent: existing implementations in {self._display_path(self.memory_root)}/"
            )
        if CACHE in sources:
            recommendations.append("Check cached patterns from previous projects")
        if EXTERNAL in sources:
            recommendations.append("Consult external reference: official library documentation")
        if not results:
            recommendations.append("Create new implementation from scratch")
            recommendations.append(
                f"Document the approach in {self._display_path(self.memory_root)}/"
            )
        return recommendations


def _find_markdown_files(directory: Path, recursive: bool) -> list[Path]:
    """Markdown files under *directory*, skipping dot-directories. Missing dir → []."""
    if not directory.is_dir():
        return []
    files = []
    try:
        entries = sorted(directory.iterdir())
    except OSError:
        return []
    for entry in entries:
        if entry.is_dir():
            if recursive and not entry.name.startswith("."):
                files.extend(_find_markdown_files(entry, recursive=True))
        elif entry.is_file() and entry.suffix == ".md":
            files.append(entry)
    return files


def format_smart_search(result: SmartSearchResult) -> str:
    """Render a cascade outcome for display."""
    lines = [f'Smart search results: "{result.query}"', "", "Search path:"]
    for i, tier in enumerate(result.search_path, 1):
        lines.append(f"   {i}. {_TIER_LABELS.get(tier, tier)}")
    lines.append("")

    if result.results:
        lines.append(f"Found {result.total_results} result(s):")
        lines.append("")
        for i, r in enumerate(result.results, 1):
            lines.append(f"{i}. [{r.source}] {r.title} ({r.relevance * 100:.0f}% relevance)")
            if r.path:
                lines.append(f"   Path: {r.path}")
            preview = r.content[:150].replace("\n", " ")
            lines.append(f"   Preview: {preview}...")
            lines.append("")
    else:
        lines.append("No results found")
        lines.append("")

    if result.recommendations:
        lines.append("Recommendations:")
        lines.extend(f"   - {rec}" for rec in result.recommendations)
        lines.append("")

    return "\n".join(lines)
