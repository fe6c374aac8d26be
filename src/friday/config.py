"""Configuration loading from environment variables and friday.toml."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib
from pathlib import Path

_DEFAULT_MEMORY_DIR = Path(".github") / "memory"
_CONFIG_FILENAME = "friday.toml"


@dataclass
class UpstashConfig:
    """Upstash Redis REST endpoint for the remote cache tier."""

    url: str
    token: str
    request_timeout: float = 10.0


@dataclass
class MemoryConfig:
    """Durable memory store settings."""

    root_dir: Path = _DEFAULT_MEMORY_DIR
    capacity: int = 100
    stale_days: int = 30
    archive_days: int = 90
    cleanup_days: int = 180


@dataclass
class SearchConfig:
    """Cascade thresholds and cache lifetimes.

    The relevance thresholds are heuristics, not tuned constants.
    """

    min_relevance: float = 0.3
    strong_relevance: float = 0.5
    strong_count: int = 2
    local_limit: int = 5
    external_limit: int = 3
    session_ttl: int = 86400
    query_cache_ttl: int = 3600


@dataclass
class FridayConfig:
    """Top-level friday configuration."""

    project_root: Path = field(default_factory=Path.cwd)
    memory: MemoryConfig = field(default_factory=MemoryConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    upstash: UpstashConfig | None = None
    log_level: str = "INFO"

    @property
    def memory_root(self) -> Path:
        """Absolute memory directory (relative roots hang off project_root)."""
        root = self.memory.root_dir
        return root if root.is_absolute() else self.project_root / root


def load_config(config_path: Path | None = None, project_root: Path | None = None) -> FridayConfig:
    """Load configuration from environment variables and optional friday.toml.

    Priority: environment variables > friday.toml > defaults.
    """
    file_data: dict = {}
    if config_path and config_path.exists():
        file_data = tomllib.loads(config_path.read_text())
    else:
        # Search current dir and ~/.friday/
        for candidate in [Path.cwd() / _CONFIG_FILENAME, Path.home() / ".friday" / _CONFIG_FILENAME]:
            if candidate.exists():
                file_data = tomllib.loads(candidate.read_text())
                break

    memory_data = file_data.get("memory", {})
    search_data = file_data.get("search", {})
    upstash_data = file_data.get("upstash", {})

    upstash_url = os.getenv("UPSTASH_REDIS_REST_URL", upstash_data.get("url", ""))
    upstash_token = os.getenv("UPSTASH_REDIS_REST_TOKEN", upstash_data.get("token", ""))
    upstash = None
    if upstash_url and upstash_token:
        upstash = UpstashConfig(
            url=upstash_url,
            token=upstash_token,
            request_timeout=float(upstash_data.get("request_timeout", 10.0)),
        )

    defaults = SearchConfig()
    config = FridayConfig(
        project_root=(project_root or Path(file_data.get("project_root", Path.cwd()))).resolve(),
        memory=MemoryConfig(
            root_dir=Path(
                os.getenv("FRIDAY_MEMORY_DIR", memory_data.get("root_dir", str(_DEFAULT_MEMORY_DIR)))
            ),
            capacity=int(os.getenv("FRIDAY_MEMORY_CAPACITY", memory_data.get("capacity", 100))),
            stale_days=int(os.getenv("FRIDAY_STALE_DAYS", memory_data.get("stale_days", 30))),
            archive_days=int(os.getenv("FRIDAY_ARCHIVE_DAYS", memory_data.get("archive_days", 90))),
            cleanup_days=int(os.getenv("FRIDAY_CLEANUP_DAYS", memory_data.get("cleanup_days", 180))),
        ),
        search=SearchConfig(
            min_relevance=float(search_data.get("min_relevance", defaults.min_relevance)),
            strong_relevance=float(search_data.get("strong_relevance", defaults.strong_relevance)),
            strong_count=int(search_data.get("strong_count", defaults.strong_count)),
            local_limit=int(search_data.get("local_limit", defaults.local_limit)),
            external_limit=int(search_data.get("external_limit", defaults.external_limit)),
            session_ttl=int(search_data.get("session_ttl", defaults.session_ttl)),
            query_cache_ttl=int(search_data.get("query_cache_ttl", defaults.query_cache_ttl)),
        ),
        upstash=upstash,
        log_level=os.getenv("FRIDAY_LOG_LEVEL", file_data.get("log_level", "INFO")),
    )
    return config


def validate_config(config: FridayConfig) -> list[str]:
    """Return a list of problems with *config*; empty means valid."""
    errors: list[str] = []

    if config.memory.capacity < 10:
        errors.append("Memory capacity must be at least 10")

    if config.upstash:
        if not config.upstash.url.startswith("https://"):
            errors.append("Upstash URL must start with https://")
        if len(config.upstash.token) < 10:
            errors.append("Upstash token appears invalid")
        if config.upstash.request_timeout <= 0:
            errors.append("Upstash request timeout must be positive")

    search = config.search
    for name in ("min_relevance", "strong_relevance"):
        value = getattr(search, name)
        if not 0.0 <= value <= 1.0:
            errors.append(f"{name} must be within [0, 1], got {value}")
    if search.strong_relevance < search.min_relevance:
        errors.append("strong_relevance must not be below min_relevance")
    if search.strong_count < 1:
        errors.append("strong_count must be at least 1")

    return errors


def config_summary(config: FridayConfig) -> str:
    """Human-readable summary of the effective configuration."""
    lines = [
        "FRIDAY configuration:",
        f"  Project root: {config.project_root}",
        f"  Memory root: {config.memory_root}",
        f"  Memory capacity: {config.memory.capacity} files",
        "",
        "  Lifecycle rules:",
        f"  - Stale: >{config.memory.stale_days} days",
        f"  - Archive: >{config.memory.archive_days} days",
        f"  - Cleanup: >{config.memory.cleanup_days} days",
        "",
    ]
    if config.upstash:
        lines.append("  Upstash Redis: enabled")
        lines.append(f"  - URL: {config.upstash.url}")
    else:
        lines.append("  Upstash Redis: not configured")
        lines.append("  - Using store-only memory")
    return "\n".join(lines)
