"""Durable record store: markdown files grouped by record category.

Markdown files are the source of truth. Every other tier mirrors what is
written here. Blocking filesystem calls run in a worker thread so the store
can be awaited from the event loop like the remote tier.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

import frontmatter

from friday.errors import StorageError

logger = logging.getLogger(__name__)

CATEGORIES: tuple[str, ...] = ("implementation", "decision", "issue")
ARCHIVE_DIR = "archive"
INDEX_FILE = "INDEX.md"
CURRENT_STATE_FILE = "current-state.md"
RECORD_SUFFIX = ".md"

_FOCUS_RE = re.compile(r"(## Current Focus\n\n).*?(\n\n|\Z)", re.DOTALL)
_LAST_UPDATED_RE = re.compile(r"^\*\*Last Updated:\*\* .*$", re.MULTILINE)


@dataclass
class Record:
    """One categorized markdown record, as found on disk."""

    category: str
    id: str
    content: str
    path: Path
    created: datetime
    modified: datetime


@dataclass
class ProjectIndex:
    """Per-installation summary, stored as INDEX.md."""

    name: str
    type: str
    tech_stack: list[str] = field(default_factory=list)
    created: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def category_dir(category: str) -> str:
    """Map a record category to its folder name (pluralized)."""
    if category not in CATEGORIES:
        raise ValueError(f"Unknown record category {category!r}; expected one of {CATEGORIES}")
    return category + "s"


def slugify(name: str) -> str:
    """Minimal slug: strip illegal chars and a trailing .md, spaces to hyphens."""
    slug = re.sub(r'[<>:"/\\|?*\n\r\t]', "", name).strip()
    if slug.lower().endswith(RECORD_SUFFIX):
        slug = slug[: -len(RECORD_SUFFIX)]
    slug = slug.strip().replace(" ", "-")
    return slug or "unnamed"


def _as_datetime(value: object) -> datetime:
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        return datetime.fromtimestamp(0, timezone.utc)


class RecordStore:
    """Read/write access to the on-disk memory tree.

    There is no locking here: two writers to the same record race and the
    last one to finish wins. :class:`~friday.memory.hybrid.HybridCoordinator`
    serialises writes per record within one process.
    """

    def __init__(self, root: Path) -> None:
        self.root = root

    # ── Initialization ───────────────────────────────────────

    async def initialize(self) -> None:
        """Ensure the category directories exist. Idempotent, never overwrites."""
        await asyncio.to_thread(self._ensure_dirs)

    def _ensure_dirs(self) -> None:
        try:
            for d in [*(category_dir(c) for c in CATEGORIES), ARCHIVE_DIR]:
                (self.root / d).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create memory tree at {self.root}: {e}") from e

    async def is_initialized(self) -> bool:
        return await asyncio.to_thread(self.root.is_dir)

    # ── Records ──────────────────────────────────────────────

    def record_path(self, category: str, record_id: str) -> Path:
        return self.root / category_dir(category) / f"{slugify(record_id)}{RECORD_SUFFIX}"

    async def write(self, category: str, record_id: str, content: str) -> Path:
        """Create or fully replace the record at (category, id)."""
        path = self.record_path(category, record_id)
        await asyncio.to_thread(self._write_text, path, content)
        logger.debug("Wrote %s record %s (%d chars)", category, path.stem, len(content))
        return path

    async def read_one(self, path: Path | str) -> str | None:
        """Return the record text at *path*, or None when there is no such file."""
        return await asyncio.to_thread(self._read_text, Path(path))

    async def list_all(self) -> list[Record]:
        """Every record in every category. A missing folder holds zero records."""
        return await asyncio.to_thread(self._list_all_sync)

    async def search(self, query: str) -> list[Record]:
        """Case-insensitive substring match over full record content, unranked."""
        q = query.lower()
        return [r for r in await self.list_all() if q in r.content.lower()]

    async def stats(self) -> dict[str, int]:
        """Record counts per category folder, plus the total."""
        records = await self.list_all()
        counts = {category_dir(c): 0 for c in CATEGORIES}
        for record in records:
            counts[category_dir(record.category)] += 1
        counts["total"] = len(records)
        return counts

    def _list_all_sync(self) -> list[Record]:
        records: list[Record] = []
        for category in CATEGORIES:
            type_dir = self.root / category_dir(category)
            try:
                paths = sorted(type_dir.glob(f"*{RECORD_SUFFIX}"))
            except OSError as e:
                logger.debug("Skipping %s: %s", type_dir, e)
                continue
            for path in paths:
                try:
                    content = path.read_text(encoding="utf-8")
                    st = path.stat()
                except (OSError, UnicodeDecodeError) as e:
                    logger.warning("Skipping unreadable record %s: %s", path, e)
                    continue
                created = getattr(st, "st_birthtime", st.st_ctime)
                records.append(
                    Record(
                        category=category,
                        id=path.stem,
                        content=content,
                        path=path,
                        created=datetime.fromtimestamp(created, timezone.utc),
                        modified=datetime.fromtimestamp(st.st_mtime, timezone.utc),
                    )
                )
        return records

    def _write_text(self, path: Path, content: str) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        except OSError as e:
            raise StorageError(f"Failed to write {path}: {e}") from e

    def _read_text(self, path: Path) -> str | None:
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Failed to read {path}: {e}") from e

    # ── Project index ────────────────────────────────────────

    @property
    def index_file(self) -> Path:
        return self.root / INDEX_FILE

    async def write_index(self, project: ProjectIndex) -> Path:
        """Overwrite INDEX.md wholesale with *project*."""
        text = render_index(project)
        await asyncio.to_thread(self._write_text, self.index_file, text)
        logger.info("Wrote project index for %s", project.name)
        return self.index_file

    async def read_index(self) -> str | None:
        return await asyncio.to_thread(self._read_text, self.index_file)

    async def read_project_index(self) -> ProjectIndex | None:
        """Parse INDEX.md frontmatter back into a ProjectIndex."""
        text = await self.read_index()
        if text is None:
            return None
        return parse_index(text)

    # ── Current state ────────────────────────────────────────

    @property
    def current_state_file(self) -> Path:
        return self.root / CURRENT_STATE_FILE

    async def create_current_state(self, project_name: str, project_type: str) -> Path:
        ts = datetime.now(timezone.utc).isoformat(timespec="seconds")
        text = (
            "# Project Current State\n\n"
            f"**Project:** {project_name}\n"
            f"**Type:** {project_type}\n"
            "**Status:** Initial Setup\n"
            f"**Last Updated:** {ts}\n\n"
            "---\n\n"
            "## Current Focus\n\n"
            "- Project initialization\n"
            "- Memory system setup\n\n"
            "## Recent Accomplishments\n\n"
            "- Memory structure created\n\n"
            "## Known Issues\n\n"
            "(None currently)\n\n"
            "## Next Steps\n\n"
            "1. Start implementing core features\n"
            "2. Set up development environment\n"
        )
        await asyncio.to_thread(self._write_text, self.current_state_file, text)
        return self.current_state_file

    async def read_current_state(self) -> str | None:
        return await asyncio.to_thread(self._read_text, self.current_state_file)

    async def update_current_state(self, focus: str | None = None) -> None:
        """Refresh the timestamp and, if given, replace the Current Focus paragraph."""
        text = await self.read_current_state()
        if text is None:
            raise StorageError(f"{self.current_state_file} not found")

        ts = datetime.now(timezone.utc).isoformat(timespec="seconds")
        text = _LAST_UPDATED_RE.sub(f"**Last Updated:** {ts}", text, count=1)
        if focus:
            text = _FOCUS_RE.sub(
                lambda m: f"{m.group(1)}{focus.strip()}{m.group(2)}", text, count=1
            )

        await asyncio.to_thread(self._write_text, self.current_state_file, text)
        logger.info("Updated current state")


def render_index(project: ProjectIndex) -> str:
    """INDEX.md text: YAML frontmatter for machines, markdown body for people."""
    created = project.created.isoformat(timespec="seconds")
    updated = project.updated.isoformat(timespec="seconds")
    body = (
        "# Memory Index\n\n"
        f"**Project:** {project.name}\n"
        f"**Type:** {project.type}\n"
        f"**Tech Stack:** {', '.join(project.tech_stack) or '(none detected)'}\n"
        f"**Created:** {created}\n"
        f"**Last Updated:** {updated}\n\n"
        "---\n\n"
        "## Memory Structure\n\n"
        "- **implementations/** - Feature implementations & code changes\n"
        "- **decisions/** - Architecture decisions & rationale\n"
        "- **issues/** - Bug fixes & problem solutions\n"
        "- **archive/** - Old/completed items\n"
    )
    post = frontmatter.Post(
        body,
        name=project.name,
        type=project.type,
        tech_stack=list(project.tech_stack),
        created=created,
        updated=updated,
    )
    return frontmatter.dumps(post) + "\n"


def parse_index(text: str) -> ProjectIndex | None:
    """Inverse of :func:`render_index`; None if the frontmatter is unusable."""
    try:
        meta = frontmatter.loads(text).metadata
    except Exception as e:
        logger.warning("Unreadable INDEX.md frontmatter: %s", e)
        return None
    if "name" not in meta:
        return None
    return ProjectIndex(
        name=str(meta["name"]),
        type=str(meta.get("type", "")),
        tech_stack=[str(t) for t in meta.get("tech_stack") or []],
        created=_as_datetime(meta.get("created")),
        updated=_as_datetime(meta.get("updated")),
    )
