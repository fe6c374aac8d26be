"""Curated external-knowledge tier: a static library catalog.

This is a stand-in for a live documentation service (such as a Context7
MCP server). Nothing here touches the network: :meth:`KnowledgeCatalog.search`
matches topics against fixed keyword patterns and
:meth:`KnowledgeCatalog.get_summary` renders a template pointing at the
library's official sources. A network-backed catalog must keep the same
method signatures so the cascade can use either.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

SUMMARY_RELEVANCE = 0.6


@dataclass(frozen=True)
class KnowledgeEntry:
    """A known library and how much to trust its documentation (0-10)."""

    name: str
    identifier: str
    description: str
    trust_weight: int


@dataclass(frozen=True)
class KnowledgeSummary:
    library: str
    content: str
    relevance: float = SUMMARY_RELEVANCE


_REACT = KnowledgeEntry("React", "/facebook/react", "A JavaScript library for building user interfaces", 10)
_NEXT = KnowledgeEntry("Next.js", "/vercel/next.js", "The React Framework for Production", 10)
_EXPRESS = KnowledgeEntry("Express", "/expressjs/express", "Fast, unopinionated, minimalist web framework", 10)
_PRISMA = KnowledgeEntry("Prisma", "/prisma/prisma", "Next-generation ORM for Node.js and TypeScript", 10)
_MONGOOSE = KnowledgeEntry("Mongoose", "/Automattic/mongoose", "MongoDB object modeling for Node.js", 9)
_JEST = KnowledgeEntry("Jest", "/jestjs/jest", "Delightful JavaScript Testing", 10)
_VITEST = KnowledgeEntry("Vitest", "/vitest-dev/vitest", "Next Generation Testing Framework", 9)
_TAILWIND = KnowledgeEntry("Tailwind CSS", "/tailwindlabs/tailwindcss", "A utility-first CSS framework", 10)
_TYPESCRIPT = KnowledgeEntry("TypeScript", "/microsoft/TypeScript", "TypeScript is a superset of JavaScript", 10)
_PASSPORT = KnowledgeEntry("Passport", "/jaredhanson/passport", "Simple, unobtrusive authentication for Node.js", 9)
_NEXT_AUTH = KnowledgeEntry("NextAuth.js", "/nextauthjs/next-auth", "Authentication for Next.js", 9)
_SOCKET_IO = KnowledgeEntry("Socket.IO", "/socketio/socket.io", "Realtime application framework", 9)
_REDIS = KnowledgeEntry("Redis", "/redis/redis", "In-memory data structure store", 10)
_POSTGRES = KnowledgeEntry("PostgreSQL", "/postgres/postgres", "The World's Most Advanced Open Source Database", 10)

KNOWN_LIBRARIES: Mapping[str, KnowledgeEntry] = MappingProxyType(
    {
        "react": _REACT,
        "next.js": _NEXT,
        "nextjs": _NEXT,
        "express": _EXPRESS,
        "prisma": _PRISMA,
        "mongoose": _MONGOOSE,
        "jest": _JEST,
        "vitest": _VITEST,
        "tailwind": _TAILWIND,
        "tailwindcss": _TAILWIND,
        "typescript": _TYPESCRIPT,
        "passport": _PASSPORT,
        "next-auth": _NEXT_AUTH,
        "socket.io": _SOCKET_IO,
        "redis": _REDIS,
        "postgresql": _POSTGRES,
        "postgres": _POSTGRES,
    }
)

# Ordered: results come back bucket by bucket in this order.
TOPIC_BUCKETS: tuple[tuple[str, re.Pattern[str], tuple[KnowledgeEntry, ...]], ...] = (
    ("authentication", re.compile(r"auth|login|session|jwt|user"), (_PASSPORT, _NEXT_AUTH)),
    ("database", re.compile(r"database|orm|sql|mongo|postgres"), (_PRISMA, _MONGOOSE)),
    ("testing", re.compile(r"test"), (_JEST, _VITEST)),
    ("realtime", re.compile(r"real|websocket|chat"), (_SOCKET_IO,)),
    ("styling", re.compile(r"css|style"), (_TAILWIND,)),
)


class KnowledgeCatalog:
    """Immutable, topic-keyed catalog of library documentation entries."""

    def __init__(self, libraries: Mapping[str, KnowledgeEntry] = KNOWN_LIBRARIES) -> None:
        self._libraries = MappingProxyType(dict(libraries))

    def resolve(self, name: str) -> KnowledgeEntry | None:
        """Look a library up by (case-insensitive) name."""
        return self._libraries.get(name.lower())

    def search(self, topic: str) -> list[KnowledgeEntry]:
        """Entries from every bucket whose pattern matches *topic*, deduplicated."""
        text = topic.lower()
        found: list[KnowledgeEntry] = []
        for _bucket, pattern, entries in TOPIC_BUCKETS:
            if pattern.search(text):
                found.extend(e for e in entries if e not in found)
        return found

    def get_summary(self, identifier: str, topic: str | None = None) -> KnowledgeSummary:
        """Templated pointer to the official docs; not fetched content."""
        library = identifier.rstrip("/").split("/")[-1] or identifier
        content = (
            f"Please consult {library} official documentation for: {topic or 'general usage'}\n\n"
            "Common resources:\n"
            f"- Official docs: https://docs.{library.lower()}.com\n"
            f"- GitHub: https://github.com{identifier}\n"
            f"- NPM: https://npmjs.com/package/{library}\n"
        )
        return KnowledgeSummary(library=library, content=content)
