"""Remote cache tier: Upstash Redis over its REST protocol.

The cache mirrors durable records and holds transient entries (sessions,
query results). It does not retry and does not degrade on its own: every
failure surfaces as :class:`~friday.errors.RemoteUnavailableError` and the
coordinator decides what to do with it.

Redis has no hierarchical addressing, so listing is emulated with a
``KEYS <prefix>*`` scan. That is a limitation of the service, kept as is.
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
import re
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import aiohttp

from friday.errors import RemoteUnavailableError

if TYPE_CHECKING:
    from friday.config import UpstashConfig

logger = logging.getLogger(__name__)

APP_PREFIX = "friday"

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


@runtime_checkable
class CacheTier(Protocol):
    """Flat key-value service the coordinator mirrors into."""

    async def put(self, key: str, value: str, ttl: int | None = None) -> None:
        """Unconditional upsert; last writer wins. ``ttl`` in seconds."""
        ...

    async def get(self, key: str) -> str | None: ...

    async def list_keys_by_prefix(self, prefix: str) -> list[str]: ...

    async def ping(self) -> bool:
        """Liveness probe. Returns False instead of raising."""
        ...

    async def close(self) -> None: ...


class UpstashCache:
    """CacheTier backed by the Upstash Redis REST API."""

    def __init__(
        self,
        config: UpstashConfig,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._url = config.url.rstrip("/")
        self._headers = {"Authorization": f"Bearer {config.token}"}
        self._timeout = aiohttp.ClientTimeout(total=config.request_timeout)
        self._session = session
        self._owns_session = session is None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def _command(self, *args: str | int) -> Any:
        """Run one Redis command and return its ``result`` field."""
        name = str(args[0])
        body = [str(a) for a in args]
        session = self._get_session()
        try:
            async with session.post(
                self._url, json=body, headers=self._headers, timeout=self._timeout
            ) as resp:
                data = await resp.json(content_type=None)
                status = resp.status
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise RemoteUnavailableError(f"Upstash {name} failed: {e!r}") from e

        if isinstance(data, dict) and data.get("error"):
            raise RemoteUnavailableError(f"Upstash {name} rejected: {data['error']}")
        if status >= 400 or not isinstance(data, dict):
            raise RemoteUnavailableError(f"Upstash {name} returned HTTP {status}")
        return data.get("result")

    async def put(self, key: str, value: str, ttl: int | None = None) -> None:
        if ttl is None:
            await self._command("SET", key, value)
        else:
            await self._command("SET", key, value, "EX", int(ttl))

    async def get(self, key: str) -> str | None:
        result = await self._command("GET", key)
        return None if result is None else str(result)

    async def list_keys_by_prefix(self, prefix: str) -> list[str]:
        pattern = _GLOB_SPECIAL.sub(r"\\\1", prefix) + "*"
        result = await self._command("KEYS", pattern)
        return [str(k) for k in result or []]

    async def ping(self) -> bool:
        try:
            return await self._command("PING") == "PONG"
        except RemoteUnavailableError as e:
            logger.debug("Upstash ping failed: %s", e)
            return False

    async def close(self) -> None:
        if self._session and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None


# ── Key scheme ───────────────────────────────────────────────


@dataclass(frozen=True)
class CacheKeys:
    """Key layout, namespaced by installation so shared endpoints never collide."""

    installation_id: str
    prefix: str = APP_PREFIX

    def memory(self, category: str, record_id: str) -> str:
        return f"{self.prefix}:{self.installation_id}:memory:{category}:{record_id}"

    def memory_prefix(self) -> str:
        return f"{self.prefix}:{self.installation_id}:memory:"

    def index(self) -> str:
        return f"{self.prefix}:{self.installation_id}:index"

    def session(self, session_id: str) -> str:
        return f"{self.prefix}:session:{session_id}"

    def query(self, query: str) -> str:
        encoded = base64.b64encode(query.encode("utf-8")).decode("ascii")
        return f"{self.query_prefix()}{encoded}"

    def query_prefix(self) -> str:
        return f"{self.prefix}:cache:{self.installation_id}:"

    def parse_memory(self, key: str) -> tuple[str, str] | None:
        """Split a mirror key back into (category, id)."""
        prefix = self.memory_prefix()
        if not key.startswith(prefix):
            return None
        category, sep, record_id = key[len(prefix) :].partition(":")
        return (category, record_id) if sep else None


# ── Typed helpers ────────────────────────────────────────────


@dataclass
class SessionContext:
    """Short-lived conversational state kept only in the cache tier."""

    project_id: str
    history: list[str] = field(default_factory=list)
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(timespec="seconds")
    )
    user_id: str | None = None
    last_query: str | None = None


class CacheStore:
    """Record-shaped operations on top of a raw :class:`CacheTier`."""

    def __init__(
        self,
        tier: CacheTier,
        keys: CacheKeys,
        session_ttl: int = 86400,
        query_ttl: int = 3600,
    ) -> None:
        self.tier = tier
        self.keys = keys
        self.session_ttl = session_ttl
        self.query_ttl = query_ttl

    # Durable mirrors (no ttl)

    async def store_memory(self, category: str, record_id: str, content: str) -> None:
        await self.tier.put(self.keys.memory(category, record_id), content)

    async def get_memory(self, category: str, record_id: str) -> str | None:
        return await self.tier.get(self.keys.memory(category, record_id))

    async def list_memory_keys(self) -> list[str]:
        return await self.tier.list_keys_by_prefix(self.keys.memory_prefix())

    async def search_memory(self, query: str) -> list[tuple[str, str]]:
        """(key, content) for every mirror containing *query*, case-insensitive."""
        q = query.lower()
        hits: list[tuple[str, str]] = []
        for key in await self.list_memory_keys():
            content = await self.tier.get(key)
            if content and q in content.lower():
                hits.append((key, content))
        return hits

    async def store_project_index(self, index_text: str) -> None:
        await self.tier.put(self.keys.index(), json.dumps({"index": index_text}))

    async def get_project_index(self) -> str | None:
        data = await self.tier.get(self.keys.index())
        if not data:
            return None
        try:
            return json.loads(data).get("index")
        except (json.JSONDecodeError, AttributeError):
            logger.warning("Malformed project index mirror under %s", self.keys.index())
            return None

    # Transient entries (ttl)

    async def store_session(self, session_id: str, context: SessionContext) -> None:
        await self.tier.put(
            self.keys.session(session_id), json.dumps(asdict(context)), ttl=self.session_ttl
        )

    async def get_session(self, session_id: str) -> SessionContext | None:
        data = await self.tier.get(self.keys.session(session_id))
        if not data:
            return None
        return SessionContext(**json.loads(data))

    async def cache_query(self, query: str, result: Any, ttl: int | None = None) -> None:
        await self.tier.put(
            self.keys.query(query), json.dumps(result), ttl=ttl or self.query_ttl
        )

    async def get_cached_query(self, query: str) -> Any | None:
        data = await self.tier.get(self.keys.query(query))
        return None if data is None else json.loads(data)

    async def stats(self) -> dict[str, int]:
        memory_keys = await self.list_memory_keys()
        cache_keys = await self.tier.list_keys_by_prefix(self.keys.query_prefix())
        return {
            "total_keys": len(memory_keys) + len(cache_keys),
            "memory_keys": len(memory_keys),
            "cache_keys": len(cache_keys),
        }
