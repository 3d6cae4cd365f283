"""
loop_agent.controller

Top-level orchestration: session startup, the bounded iteration loop and
event replay for the ``run`` and ``replay`` CLI commands.
"""
from __future__ import annotations

import json
import platform
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Any, Dict, Iterator, Optional

from . import phases
from .agents import AgentDriver
from .config import LoopConfig
from .io_utils import read_agent_text
from .phases import LoopContext
from .repo import GitRepository
from .runner import ProcessRunner
from .schema import SessionManifest
from .session import MAX_ITERATIONS, Session
from .transcript import trace
from .validator import ScriptValidator


def start_session(
    *,
    config: LoopConfig,
    root: str | Path,
    timestamp: Optional[str] = None,
    stream: Optional[IO[str]] = None,
    max_iterations: int = MAX_ITERATIONS,
) -> LoopContext:
    session = Session.create(
        config=config,
        root=root,
        timestamp=timestamp,
        stream=stream,
        max_iterations=max_iterations,
    )
    runner = ProcessRunner(session)
    return LoopContext(
        session=session,
        agent=AgentDriver(session, runner),
        repo=GitRepository(session, runner),
        validator=ScriptValidator(session),
    )


def run_session(ctx: LoopContext, *, max_iterations: Optional[int] = None) -> SessionManifest:
    """Announce the session, cut the session branch and run every iteration.

    The bound is the manifest's ``max_iterations``; passing ``max_iterations``
    overwrites it before anything is logged. Returns the manifest once the
    last iteration has finished.
    Fatal errors propagate to the caller with the manifest still ``running``.
    """
    session = ctx.session
    if max_iterations is not None:
        session.manifest.max_iterations = max_iterations
        session.write_manifest()
    max_iterations = session.manifest.max_iterations
    session.sink.log("[LOG] Log in", session.dir)
    session.sink.log("[OS]", "Running on:", platform.system(), "using:", session.validate_script)
    session.events.log(
        "session_started",
        {
            "session_id": session.session_id,
            "branch": session.branch,
            "validate_script": session.validate_script,
            "agent_command": session.config.agent.command,
            "max_iterations": max_iterations,
        },
    )

    ctx.repo.report_status()
    ctx.repo.create_branch(session.branch)

    for iteration in range(1, max_iterations + 1):
        run_iteration(ctx, iteration)

    session.finish("completed")
    return session.manifest


def run_iteration(ctx: LoopContext, iteration: int) -> None:
    session = ctx.session
    session.begin_iteration(iteration)

    with trace(session.sink, session.iter_tag):
        with _phase(ctx, "CLEANUP"):
            phases.cleanup(ctx)
        with _phase(ctx, "INIT"):
            phases.init(ctx)
        with _phase(ctx, "CLEANUP"):
            phases.cleanup(ctx)

        with _phase(ctx, "TASK-SELECTION"):
            task = phases.select_task(ctx)
        with _phase(ctx, "CLEANUP"):
            phases.cleanup(ctx)

        # Read after cleanup: the filter agent may have rewritten the task.
        task_text = read_agent_text(task)
        with _phase(ctx, "SPEC"):
            spec_text = phases.write_spec(ctx, task_text)
        with _phase(ctx, "CLEANUP"):
            phases.cleanup(ctx)

        with _phase(ctx, "RED"):
            phases.red(ctx, spec_text)
        with _phase(ctx, "CLEANUP"):
            phases.cleanup(ctx)

        with _phase(ctx, "GREEN"):
            phases.green(ctx)
        with _phase(ctx, "CLEANUP"):
            phases.cleanup(ctx)

        with _phase(ctx, "EVOLVE"):
            phases.evolve(ctx, task_text)
        with _phase(ctx, "ARCHIVE"):
            phases.archive(ctx, task)

    session.finish_iteration()


@contextmanager
def _phase(ctx: LoopContext, name: str) -> Iterator[None]:
    session = ctx.session
    with session.events.span(session.next_span_id(name), name=name):
        yield


def replay_events(session_dir: str | Path) -> Dict[str, Any]:
    path = Path(session_dir).resolve() / "events.jsonl"
    if not path.exists():
        raise FileNotFoundError(f"events.jsonl not found at {path}")

    counts: Dict[str, int] = {}
    agent_calls: Dict[str, int] = {}
    phase_failures: Dict[str, int] = {}
    span_names: Dict[str, str] = {}
    validations_passed = 0
    validations_failed = 0
    iterations_completed = 0
    outdated_tasks = 0
    selected_tasks = []
    status = "running"

    with path.open("r", encoding="utf-8") as fh:
        for line in fh:
            if not line.strip():
                continue
            event = json.loads(line)
            event_type = event.get("type", "unknown")
            counts[event_type] = counts.get(event_type, 0) + 1
            payload = event.get("payload") or {}
            if event_type == "span_begin":
                span_names[event.get("span_id", "")] = event.get("name", "unknown")
                continue
            if event_type == "span_end":
                outputs = event.get("outputs") or {}
                if outputs.get("ok") is False:
                    name = span_names.get(event.get("span_id", ""), "unknown")
                    phase_failures[name] = phase_failures.get(name, 0) + 1
                continue
            if event_type == "agent_invocation":
                # CLEANUP-3 / RED-2 / GREEN-1 all count under their phase family.
                phase = str(payload.get("phase", "unknown"))
                family = phase.rsplit("-", 1)[0] if phase.rsplit("-", 1)[-1].isdigit() else phase
                agent_calls[family] = agent_calls.get(family, 0) + 1
            elif event_type == "validate":
                if payload.get("exit_code") == 0:
                    validations_passed += 1
                else:
                    validations_failed += 1
            elif event_type == "iteration_finished":
                iterations_completed += 1
            elif event_type == "task_outdated":
                outdated_tasks += 1
            elif event_type == "task_selected":
                selected_tasks.append(payload.get("task"))
            elif event_type == "session_finished":
                status = payload.get("status", status)

    return {
        "event_counts": counts,
        "agent_invocations": agent_calls,
        "phase_failures": phase_failures,
        "validations_passed": validations_passed,
        "validations_failed": validations_failed,
        "iterations_completed": iterations_completed,
        "outdated_tasks": outdated_tasks,
        "selected_tasks": selected_tasks,
        "status": status,
        "events_path": str(path),
    }
