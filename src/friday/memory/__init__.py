"""Hybrid project memory with cascading retrieval.

Layout (relative to the project root):
    .github/memory/
    ├── INDEX.md                       # Project index: YAML frontmatter + summary
    ├── current-state.md               # Free-text state, focus section patchable
    ├── implementations/               # Feature implementations & code changes
    ├── decisions/                     # Architecture decisions & rationale
    ├── issues/                        # Bug fixes & problem solutions
    └── archive/                       # Old/completed items

The markdown tree is authoritative. An optional Upstash Redis cache mirrors
it under `friday:<installation>:memory:<category>:<id>` keys.
"""
