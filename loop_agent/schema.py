"""
loop_agent.schema

Typed records persisted alongside a session.
"""
from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, Field


SessionStatus = Literal["running", "completed", "failed", "interrupted"]


class IterationRecord(BaseModel):
    iteration: int
    started_at: str
    finished_at: Optional[str] = None
    selected_task: Optional[str] = None
    outdated_tasks: List[str] = Field(default_factory=list)
    created_task_prompts: int = 0
    spec_attempts: int = 0
    red_attempts: int = 0
    green_attempts: int = 0
    cleanup_attempts: int = 0


class SessionManifest(BaseModel):
    """
    Summary of one controller run, rewritten after every iteration.
    """

    session_id: str
    branch: str
    validate_script: str
    max_iterations: int
    started_at: str
    finished_at: Optional[str] = None
    status: SessionStatus = "running"
    error: Optional[str] = None
    iterations: List[IterationRecord] = Field(default_factory=list)

    @property
    def iterations_completed(self) -> int:
        return sum(1 for record in self.iterations if record.finished_at is not None)
