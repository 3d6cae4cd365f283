"""
loop_agent.phases

The phases of one iteration: CLEANUP, TASK-SELECTION, SPEC, RED, GREEN,
EVOLVE and ARCHIVE.

Every phase takes the ``LoopContext`` explicitly. Errors from the runner or
the filesystem are never caught here; they end the session.
"""
from __future__ import annotations

import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import List

from .agents import AgentDriver
from .io_utils import read_agent_text
from .path_utils import display_path
from .prompts import (
    CLEANUP_TEMPLATE,
    CREATE_TASK_PROMPT,
    EVOLVE_TEMPLATE,
    GREEN_TEMPLATE,
    INIT_PROMPT,
    RED_TEMPLATE,
    SPEC_TEMPLATE,
    is_outdated,
    persist_prompt,
    render,
    task_filter_prompt,
)
from .repo import RepositoryProbe
from .session import Session
from .validator import Validator


@dataclass
class LoopContext:
    session: Session
    agent: AgentDriver
    repo: RepositoryProbe
    validator: Validator


def cleanup(ctx: LoopContext) -> int:
    """Ask the agent to commit or discard changes until the tree is clean.

    Returns the number of agent attempts made; 0 means the tree was already
    clean and nothing was written. There is no upper bound on attempts.
    """
    session = ctx.session
    dirty, files = ctx.repo.status()
    if not dirty:
        return 0

    session.sink.log(f"[{session.iter_tag}-CLEANUP-{session.attempt}] Repo is dirty, clean up")
    threshold = session.config.cleanup_warn_threshold
    attempts = 0
    while dirty:
        if session.attempt > threshold:
            session.sink.log(
                "[CLEANUP] WARNING attempt",
                session.attempt,
                "exceeds threshold",
                threshold,
                "and the tree is still dirty",
            )
            session.events.log(
                "cleanup_threshold_exceeded",
                {"iteration": session.iteration, "attempt": session.attempt, "threshold": threshold},
            )
        prompt = render(
            CLEANUP_TEMPLATE,
            {"files": files, "iteration": session.iteration, "attempt": session.attempt},
        )
        ctx.agent.invoke(
            prompt,
            phase=f"CLEANUP-{session.attempt}",
            record=f"cleanup-{session.attempt}-prompt.txt",
        )
        session.attempt += 1
        attempts += 1
        dirty, files = ctx.repo.status()

    session.record.cleanup_attempts += attempts
    return attempts


def init(ctx: LoopContext) -> None:
    ctx.agent.invoke(INIT_PROMPT, phase="INIT", record="init-prompt.txt", via_stdin=False)


def list_pending_tasks(tasks_dir: Path) -> List[Path]:
    """Regular files directly under ``tasks_dir``, in name order."""
    return sorted((path for path in tasks_dir.iterdir() if path.is_file()), key=lambda path: path.name)


def archive_file(path: Path, directory: Path) -> Path:
    target = directory / path.name
    shutil.move(str(path), str(target))
    return target


def select_task(ctx: LoopContext) -> Path:
    """Return the first pending task the agent does not mark ``[OUTDATED]``.

    Outdated tasks are moved into the iteration directory as they are found.
    An empty queue makes the agent invent a task, then the listing repeats.
    The selected task itself stays in place until ``archive``.
    """
    session = ctx.session
    record = session.record
    filter_index = 0
    while True:
        tasks = list_pending_tasks(session.tasks_dir)
        if not tasks:
            record.created_task_prompts += 1
            session.sink.log("[FILE]", display_path(session.tasks_dir, session.root), "is empty, create a task")
            ctx.agent.invoke(
                CREATE_TASK_PROMPT,
                phase="TASK-CREATE",
                record=f"task-create-{record.created_task_prompts}-prompt.txt",
                via_stdin=False,
            )
            continue

        task = tasks[0]
        task_name = display_path(task, session.root)
        filter_index += 1
        prompt = task_filter_prompt(task_name, read_agent_text(task))
        ctx.agent.invoke(
            prompt,
            phase=f"TASK-FILTER-{filter_index}",
            record=f"task-filter-prompt-{filter_index}.txt",
        )

        if is_outdated(read_agent_text(task)):
            session.sink.log("[FILE]", task_name, "is outdated")
            archive_file(task, session.iteration_dir)
            record.outdated_tasks.append(task.name)
            session.events.log("task_outdated", {"iteration": session.iteration, "task": task.name})
            continue

        session.sink.log("[FILE]", task_name, "is up to date")
        record.selected_task = task.name
        session.events.log("task_selected", {"iteration": session.iteration, "task": task.name})
        return task


def write_spec(ctx: LoopContext, task_text: str) -> str:
    """Loop the agent until the specification artifact exists; return its text."""
    session = ctx.session
    spec_path = session.spec_path
    spec_name = display_path(spec_path, session.root)
    if spec_path.exists():
        session.sink.log("[FILE]", spec_name, "already exists before SPEC, reusing it")

    prompt = render(SPEC_TEMPLATE, {"validate_script": session.validate_script}) + task_text
    persist_prompt(session.iteration_dir, "spec-prompt.txt", prompt)
    while not spec_path.exists():
        session.record.spec_attempts += 1
        ctx.agent.invoke(prompt, phase="SPEC", record="spec-prompt.txt")
    session.sink.log("[FILE]", spec_name, "exist")
    return read_agent_text(spec_path)


def red(ctx: LoopContext, spec_text: str) -> int:
    """Loop the agent until the validator fails; return the number of tries."""
    session = ctx.session
    prompt = render(RED_TEMPLATE + spec_text, {"validate_script": session.validate_script})
    tries = 0
    while True:
        tries += 1
        session.record.red_attempts = tries
        ctx.agent.invoke(prompt, phase=f"RED-{tries}", record="red-prompt.txt")
        result = ctx.validator.validate(f"RED-{tries}")
        if not result.ok:
            session.sink.log("[RED]", "Validate Failed")
            return tries
        session.sink.log("[RED]", "Validate Success")


def green(ctx: LoopContext) -> int:
    """Loop the agent until the validator passes; return the number of agent calls.

    Each call gets the previous failure as ``{{FAIL}}``.
    """
    session = ctx.session
    calls = 0
    while True:
        result = ctx.validator.validate(f"GREEN-{calls + 1}")
        if result.ok:
            session.sink.log("[GREEN]", "Validate Success")
            return calls
        session.sink.log("[GREEN]", "Validate Failed")
        calls += 1
        session.record.green_attempts = calls
        prompt = render(
            GREEN_TEMPLATE,
            {
                "FAIL": f"[exit code:{result.exit_code}]{result.output}",
                "validate_script": session.validate_script,
            },
        )
        ctx.agent.invoke(prompt, phase=f"GREEN-{calls}", record=f"green-{calls}-prompt.txt")


def evolve(ctx: LoopContext, task_text: str) -> None:
    prompt = render(EVOLVE_TEMPLATE, {"validate_script": ctx.session.validate_script}) + task_text
    ctx.agent.invoke(prompt, phase="EVOLVE", record="evolve-prompt.txt")


def archive(ctx: LoopContext, task: Path) -> List[Path]:
    """Move the task and ``SPEC.md`` into the iteration dir, then clean up."""
    session = ctx.session
    moved: List[Path] = []
    for path in (task, session.spec_path):
        if path.exists():
            moved.append(archive_file(path, session.iteration_dir))
            session.sink.log("[FILE]", display_path(path, session.root), "archived")
    cleanup(ctx)
    return moved
