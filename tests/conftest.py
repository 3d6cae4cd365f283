"""Shared fakes for loop tests: a scripted agent runner, a fake repo and validator."""

import io
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest

from loop_agent.agents import AgentDriver
from loop_agent.config import LoopConfig
from loop_agent.phases import LoopContext
from loop_agent.runner import InvocationError
from loop_agent.session import Session
from loop_agent.shell import StreamResult
from loop_agent.validator import ValidationResult


@dataclass
class RunnerCall:
    cmd: List[str]
    tag: str
    stdin_text: Optional[str]
    record_matches: Optional[bool] = None


class ScriptedRunner:
    """Stands in for ``ProcessRunner``; dispatches on the phase part of the tag.

    ``handlers`` maps a phase family (``"SPEC"``, ``"RED"``, ``"CLEANUP"``...) to
    a callable receiving the ``RunnerCall``; ``crash`` makes a family exit non-zero.
    """

    def __init__(self, session: Session):
        self.session = session
        self.calls: List[RunnerCall] = []
        self.handlers: Dict[str, Callable[[RunnerCall], object]] = {}
        self.crashes: Dict[str, int] = {}

    def on(self, family: str, handler: Callable[[RunnerCall], object]) -> None:
        self.handlers[family] = handler

    def crash(self, family: str, exit_code: int = 1) -> None:
        self.crashes[family] = exit_code

    def run(self, cmd, tag, *, stdin_text=None):
        call = RunnerCall(cmd=list(cmd), tag=tag, stdin_text=stdin_text)
        call.record_matches = self._record_on_disk(call)
        self.calls.append(call)
        family = phase_family(tag)
        handler = self.handlers.get(family)
        if handler is not None:
            handler(call)
        code = self.crashes.get(family)
        if code:
            raise InvocationError(" ".join(cmd), f"exit status {code}", exit_code=code)
        return StreamResult(exit_code=0, elapsed_sec=0.0)

    def tags(self) -> List[str]:
        return [call.tag for call in self.calls]

    def families(self) -> List[str]:
        return [phase_family(call.tag) for call in self.calls]

    def _record_on_disk(self, call: RunnerCall) -> bool:
        prompt = call.stdin_text if call.stdin_text is not None else call.cmd[-1]
        records = self.session.iteration_dir.glob("*prompt*.txt")
        return any(path.read_text(encoding="utf-8") == prompt for path in records)


def phase_family(tag: str) -> str:
    # ITER-1-AGENT-GREEN-2 -> GREEN, ITER-1-AGENT-TASK-FILTER-1 -> TASK-FILTER
    phase = tag.split("-AGENT-", 1)[-1]
    head, _, tail = phase.rpartition("-")
    return head if tail.isdigit() and head else phase


class FakeRepo:
    def __init__(self):
        self.dirty_files: List[str] = []
        self.status_calls = 0
        self.branches: List[str] = []
        self.status_reports = 0

    def status(self):
        self.status_calls += 1
        listing = "".join(f"?? {name}\n" for name in self.dirty_files)
        return bool(self.dirty_files), listing

    def report_status(self):
        self.status_reports += 1

    def create_branch(self, name):
        self.branches.append(name)


@dataclass
class FakeValidator:
    """Reports ``exit_code`` until a test flips it; records every label."""

    exit_code: int = 0
    output: str = ""
    labels: List[str] = field(default_factory=list)

    def validate(self, label=""):
        self.labels.append(label)
        return ValidationResult(exit_code=self.exit_code, output=self.output, elapsed_sec=0.0)


@pytest.fixture
def repo_root(tmp_path) -> Path:
    (tmp_path / "tasks").mkdir()
    return tmp_path


@pytest.fixture
def session(repo_root):
    session = Session.create(
        config=LoopConfig(),
        root=repo_root,
        timestamp="260101120000",
        stream=io.StringIO(),
        system="Linux",
    )
    yield session
    session.close()


@pytest.fixture
def runner(session):
    return ScriptedRunner(session)


@pytest.fixture
def fake_repo():
    return FakeRepo()


@pytest.fixture
def fake_validator():
    return FakeValidator()


@pytest.fixture
def ctx(session, runner, fake_repo, fake_validator):
    return LoopContext(
        session=session,
        agent=AgentDriver(session, runner),
        repo=fake_repo,
        validator=fake_validator,
    )


@pytest.fixture
def started(ctx):
    """Context with iteration 1 already begun."""
    ctx.session.begin_iteration(1)
    return ctx
