"""Heuristic relevance scoring shared by every memory tier.

Scores from different tiers are compared directly when results are merged,
so every tier must score through :func:`score` and nothing else.
"""

from __future__ import annotations

EXACT_MATCH_WEIGHT = 0.5


def score(query: str, content: str, exact_weight: float = EXACT_MATCH_WEIGHT) -> float:
    """Score *content* against *query* in [0, 1].

    The full query appearing as a substring earns ``exact_weight``; the share
    of individual query words found earns up to the remainder. A blank query
    has nothing to match and scores 0.0.
    """
    q = query.lower()
    words = q.split()
    if not words:
        return 0.0
    text = content.lower()

    total = 0.0
    if q in text:
        total += exact_weight

    matched = sum(1 for word in words if word in text)
    total += (1.0 - exact_weight) * matched / len(words)

    return min(total, 1.0)


def extract_snippet(content: str, query: str, radius: int = 300, head: int = 500) -> str:
    """Cut the window around the first query match, or the document head."""
    index = content.lower().find(query.lower()) if query else -1
    if index == -1:
        if len(content) <= head:
            return content
        return content[:head] + "..."

    start = max(0, index - radius)
    end = min(len(content), index + len(query) + radius)
    prefix = "..." if start > 0 else ""
    suffix = "..." if end < len(content) else ""
    return prefix + content[start:end] + suffix
