"""
loop_agent.preflight

Readiness checks run before starting a session.
"""
from __future__ import annotations

import os
import shutil
from pathlib import Path
from typing import Any, Dict

from .config import LoopConfig


def run_preflight(config: LoopConfig, root: str | Path) -> Dict[str, Any]:
    root_path = Path(root).resolve()
    validate_script = config.resolved_validate_script()
    script_path = root_path / validate_script

    checks: Dict[str, Any] = {
        "git": _binary_exists(config.git.command),
        "agent": _binary_exists(config.agent.command),
        "agent_command": config.agent.command,
        "git_work_tree": (root_path / ".git").exists(),
        "validate_script": validate_script,
        "validate_script_present": script_path.is_file(),
        "validate_script_executable": script_path.is_file() and os.access(script_path, os.X_OK),
        "tasks_dir": str(root_path / config.paths.tasks_dir),
        "tasks_dir_present": (root_path / config.paths.tasks_dir).is_dir(),
    }
    warnings: list[str] = []

    if checks["tasks_dir_present"]:
        pending = [p for p in (root_path / config.paths.tasks_dir).iterdir() if p.is_file()]
        checks["pending_tasks"] = len(pending)
        if not pending:
            warnings.append("tasks directory is empty; the first iteration will ask the agent to create a task.")
    else:
        checks["pending_tasks"] = None

    if (root_path / config.paths.spec_file).exists():
        warnings.append(f"{config.paths.spec_file} exists at the repository root; it will be reused by the next SPEC phase.")

    if checks["validate_script_present"] and not checks["validate_script_executable"]:
        warnings.append(f"{validate_script} is not executable.")

    ok = all(
        checks[key] is True
        for key in ("git", "agent", "git_work_tree", "validate_script_present", "tasks_dir_present")
    )
    return {"ok": ok, "checks": checks, "warnings": warnings}


def _binary_exists(name: str) -> bool:
    return shutil.which(name) is not None
