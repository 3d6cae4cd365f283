"""
loop_agent.io_utils

File loaders shared by config and phases.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

import yaml


def read_yaml_mapping(path: str | Path, *, label: str) -> Dict[str, Any]:
    yaml_path = Path(path)
    data = yaml.safe_load(yaml_path.read_text(encoding="utf-8"))
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{label} at {yaml_path} must contain a mapping")
    return data


def read_agent_text(path: str | Path) -> str:
    """Read a file the agent wrote; bytes that are not UTF-8 become U+FFFD."""
    return Path(path).read_text(encoding="utf-8", errors="replace")
