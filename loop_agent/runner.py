"""
loop_agent.runner

Run a subprocess while streaming its output into the transcript sink.

Any non-zero exit or spawn failure raises ``InvocationError``: when the agent
(or a git bookkeeping command) fails, the loop cannot make progress.
"""
from __future__ import annotations

from typing import List, Optional, Protocol

from .path_utils import safe_path_component
from .session import Session
from .shell import CommandError, StreamResult, shell_quote, stream_command
from .transcript import trace


class InvocationError(CommandError):
    def __init__(self, command: str, message: str, exit_code: int | None = None):
        super().__init__(f"{command} error: {message}")
        self.command = command
        self.exit_code = exit_code


class Runner(Protocol):
    def run(self, cmd: List[str], tag: str, *, stdin_text: Optional[str] = None) -> StreamResult:
        ...


class ProcessRunner:
    def __init__(self, session: Session):
        self.session = session

    def run(self, cmd: List[str], tag: str, *, stdin_text: Optional[str] = None) -> StreamResult:
        sink = self.session.sink
        transcript = self.session.transcript_dir / f"{safe_path_component(tag)}.txt"
        command = shell_quote(cmd)

        with trace(sink, tag), sink.scoped(transcript):
            sink.log("[EXEC] command:", command)

            def _on_line(stream: str, line: str) -> None:
                sink.log(f"[{tag}-{stream}]", line)

            try:
                result = stream_command(cmd, _on_line, cwd=self.session.root, stdin_text=stdin_text)
            except OSError as exc:
                sink.log("[EXEC]", command, "error:", exc)
                raise InvocationError(command, str(exc)) from exc

            sink.log("[EXEC]", command, "exit code:", result.exit_code, "seconds:", f"{result.elapsed_sec:.3f}")
            if not result.ok:
                raise InvocationError(command, f"exit status {result.exit_code}", exit_code=result.exit_code)
        return result
