"""
loop_agent.path_utils

Filename helpers for session artifacts.
"""
from __future__ import annotations

from pathlib import Path


def safe_path_component(raw: str | None, *, max_len: int = 120) -> str:
    if not raw:
        return ""
    chars = []
    for ch in raw:
        if ch.isalnum() or ch in {"-", "_", "."}:
            chars.append(ch)
        else:
            chars.append("_")
    return "".join(chars)[:max_len]


def display_path(path: Path, root: Path) -> str:
    """Render ``path`` the way prompts and logs refer to it: ``./tasks/001_x.md``."""
    try:
        rel = path.resolve().relative_to(root.resolve())
    except ValueError:
        return str(path)
    return "./" + rel.as_posix()
