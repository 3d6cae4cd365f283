"""
loop_agent.validator

Run the project validation script under a hard wall-clock bound.

A non-zero exit is the normal signal that drives the RED and GREEN loops, so
nothing here raises on failure.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Protocol

from .path_utils import safe_path_component
from .session import Session
from .shell import run_command, shell_quote
from .transcript import trace

VALIDATE_TIMEOUT_SEC = 300


@dataclass
class ValidationResult:
    exit_code: int
    output: str
    elapsed_sec: float

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class Validator(Protocol):
    def validate(self, label: str = "") -> ValidationResult:
        ...


class ScriptValidator:
    def __init__(self, session: Session, timeout_sec: float = VALIDATE_TIMEOUT_SEC):
        self.session = session
        self.timeout_sec = timeout_sec

    def validate(self, label: str = "") -> ValidationResult:
        cmd = [self.session.validate_script]
        started = time.monotonic()
        with trace(self.session.sink, "VALIDATE"):
            try:
                result = run_command(
                    cmd,
                    cwd=self.session.root,
                    timeout_sec=self.timeout_sec,
                    merge_stderr=True,
                )
            except OSError as exc:
                outcome = ValidationResult(
                    exit_code=-1,
                    output=str(exc),
                    elapsed_sec=time.monotonic() - started,
                )
            else:
                outcome = ValidationResult(
                    exit_code=result.exit_code,
                    output=result.stdout + result.stderr,
                    elapsed_sec=result.elapsed_sec,
                )
            self.session.sink.log("[VALIDATE]", "exit code:", outcome.exit_code)

        self._write_transcript(label, shell_quote(cmd), outcome)
        self.session.events.log(
            "validate",
            {
                "iteration": self.session.iteration,
                "label": label,
                "exit_code": outcome.exit_code,
                "elapsed_sec": round(outcome.elapsed_sec, 3),
            },
        )
        return outcome

    def _write_transcript(self, label: str, command: str, outcome: ValidationResult) -> None:
        parts = [self.session.iter_tag, "VALIDATE"]
        if label:
            parts.append(label)
        path = self.session.transcript_dir / f"{safe_path_component('-'.join(parts))}.txt"
        body = outcome.output if outcome.output.endswith("\n") or not outcome.output else outcome.output + "\n"
        with path.open("a", encoding="utf-8") as fh:
            fh.write(f"[EXEC] command: {command}\n")
            fh.write(body)
            fh.write(f"[EXIT] code: {outcome.exit_code} seconds: {outcome.elapsed_sec:.3f}\n")
