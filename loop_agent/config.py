"""
loop_agent.config

Typed loader for the optional loop configuration file.

Every field defaults to the fixed behaviour of the loop, so running without a
config file is the normal case.
"""
from __future__ import annotations

import platform
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .io_utils import read_yaml_mapping

POSIX_VALIDATE_SCRIPT = "./validate.sh"
WINDOWS_VALIDATE_SCRIPT = ".\\validate.bat"
DEFAULT_AGENT_ARGS = ["-y", "-d", "--thinking", "--prompt"]


class AgentConfig(BaseModel):
    command: str = "iflow"
    args: List[str] = Field(default_factory=lambda: list(DEFAULT_AGENT_ARGS))

    @model_validator(mode="after")
    def _validate_prompt_flag(self) -> "AgentConfig":
        if not self.command.strip():
            raise ValueError("agent.command must not be empty")
        # The prompt is either appended after the last flag or fed on stdin.
        if not self.args or self.args[-1] != "--prompt":
            raise ValueError("agent.args must end with '--prompt'")
        return self


class PathsConfig(BaseModel):
    tasks_dir: str = "tasks"
    spec_file: str = "SPEC.md"
    state_root: str = ".loop_agent"


class GitConfig(BaseModel):
    command: str = "git"
    branch_prefix: str = "ai/gen/loop-"


class LoopConfig(BaseModel):
    agent: AgentConfig = Field(default_factory=AgentConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    git: GitConfig = Field(default_factory=GitConfig)
    cleanup_warn_threshold: int = 20
    validate_script: Optional[str] = None

    @field_validator("cleanup_warn_threshold")
    @classmethod
    def _positive_threshold(cls, value: int) -> int:
        if value < 1:
            raise ValueError("cleanup_warn_threshold must be >= 1")
        return value

    def resolved_validate_script(self, system: str | None = None) -> str:
        if self.validate_script:
            return self.validate_script
        return default_validate_script(system)


def default_validate_script(system: str | None = None) -> str:
    name = system if system is not None else platform.system()
    if name.lower() == "windows":
        return WINDOWS_VALIDATE_SCRIPT
    return POSIX_VALIDATE_SCRIPT


def load_loop_config(path: str | Path | None) -> LoopConfig:
    if path is None:
        return LoopConfig()
    cfg_path = Path(path)
    return LoopConfig.model_validate(read_yaml_mapping(cfg_path, label="loop config"))

