"""Shared fixtures: a temp project and an in-memory cache tier."""

from __future__ import annotations

from pathlib import Path

import pytest

from friday.config import FridayConfig
from friday.errors import RemoteUnavailableError


class FakeCache:
    """In-memory CacheTier with switchable failures."""

    def __init__(self, alive: bool = True) -> None:
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}
        self.alive = alive
        self.fail_keys: set[str] = set()
        self.fail_all = False
        self.pings = 0
        self.closed = False

    def _check(self, key: str = "") -> None:
        if self.fail_all or key in self.fail_keys:
            raise RemoteUnavailableError(f"refused {key or 'command'}")

    async def put(self, key: str, value: str, ttl: int | None = None) -> None:
        self._check(key)
        self.data[key] = value
        self.ttls[key] = ttl

    async def get(self, key: str) -> str | None:
        self._check()
        return self.data.get(key)

    async def list_keys_by_prefix(self, prefix: str) -> list[str]:
        self._check()
        return sorted(k for k in self.data if k.startswith(prefix))

    async def ping(self) -> bool:
        self.pings += 1
        return self.alive

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def project(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture
def config(project: Path) -> FridayConfig:
    return FridayConfig(project_root=project)


@pytest.fixture
def fake_cache() -> FakeCache:
    return FakeCache()


@pytest.fixture
def dead_cache() -> FakeCache:
    return FakeCache(alive=False)
