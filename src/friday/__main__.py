"""Entry point: python -m friday <command> [args]

- init [name] [type]   Create the memory tree, INDEX.md and current-state.md
- search <query>       Ranked search over stored records
- smart-search <query> Cascading search: local → cache → library docs
- sync                 Mirror every record into the cache tier
- stats                Record counts and cache mode
"""

from __future__ import annotations

import asyncio
import logging
import sys

from friday.config import config_summary, load_config
from friday.errors import FridayError


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


async def _run(cmd: str, args: list[str]) -> str:
    from friday.memory.cascade import CascadeController
    from friday.memory.hybrid import HybridCoordinator
    from friday.memory.store import ProjectIndex
    from friday.tools.memory_tools import get_memory_tools

    config = load_config()
    _setup_logging(config.log_level)

    async with HybridCoordinator(config) as memory:
        tools = get_memory_tools(memory, CascadeController(memory))

        if cmd == "init":
            name = args[0] if args else config.project_root.name
            project_type = args[1] if len(args) > 1 else "auto-detect"
            await memory.write_index(ProjectIndex(name=name, type=project_type))
            if await memory.read_current_state() is None:
                await memory.create_current_state(name, project_type)
            return f"Memory initialized at {config.memory_root}\n\n{config_summary(config)}"
        if cmd == "search":
            return await tools["search"](" ".join(args))
        if cmd == "smart-search":
            return await tools["smart_search"](" ".join(args))
        if cmd == "sync":
            return await tools["sync"]()
        return await tools["memory_stats"]()


def main() -> None:
    cmd = sys.argv[1] if len(sys.argv) > 1 else ""

    if cmd not in ("init", "search", "smart-search", "sync", "stats"):
        print("Usage: python -m friday [init|search|smart-search|sync|stats] [args]")
        print("  init [name] [type]    Create memory tree and project index")
        print("  search <query>        Ranked search over stored records")
        print("  smart-search <query>  Local → cache → library docs")
        print("  sync                  Mirror records to the cache tier")
        print("  stats                 Record counts and cache mode")
        sys.exit(1)

    try:
        print(asyncio.run(_run(cmd, sys.argv[2:])))
    except FridayError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
