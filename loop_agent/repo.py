"""
loop_agent.repo

Git access: cleanliness probe, session branch and the startup status report.
"""
from __future__ import annotations

from typing import Protocol, Tuple

from .runner import Runner
from .session import Session
from .shell import ensure_success, run_command


class RepositoryProbe(Protocol):
    def status(self) -> Tuple[bool, str]:
        ...

    def report_status(self) -> None:
        ...

    def create_branch(self, name: str) -> None:
        ...


class GitRepository:
    def __init__(self, session: Session, runner: Runner):
        self.session = session
        self.runner = runner
        self.git = session.config.git.command

    def status(self) -> Tuple[bool, str]:
        """Return ``(dirty, porcelain)``; an empty porcelain listing means clean.

        Raises ``CommandError`` when git itself fails: without the probe the
        loop cannot tell whether a phase left changes behind.
        """
        cmd = [self.git, "status", "--porcelain=v1"]
        result = run_command(cmd, cwd=self.session.root)
        ensure_success(result, " ".join(cmd))
        return len(result.stdout) > 0, result.stdout

    def report_status(self) -> None:
        self.runner.run([self.git, "status"], "GIT-STATUS")

    def create_branch(self, name: str) -> None:
        self.runner.run([self.git, "checkout", "-b", name], "GIT-CHECKOUT")
