"""
loop_agent.shell

Small subprocess helpers used by the runner, repository probe and validator.
"""
from __future__ import annotations

import os
import shlex
import signal
import subprocess
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Callable, List, Optional


@dataclass
class CommandResult:
    ok: bool
    stdout: str
    stderr: str
    exit_code: int
    elapsed_sec: float


@dataclass
class StreamResult:
    exit_code: int
    elapsed_sec: float

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class CommandError(RuntimeError):
    pass


LineCallback = Callable[[str, str], None]


def run_command(
    cmd: List[str],
    cwd: Optional[str | Path] = None,
    timeout_sec: Optional[float] = None,
    stdin_text: Optional[str] = None,
    merge_stderr: bool = False,
) -> CommandResult:
    """Run ``cmd`` to completion and capture its output.

    With ``merge_stderr`` the child's stderr is redirected into stdout so the
    captured text keeps the interleaving the child produced. When
    ``timeout_sec`` elapses the whole process group is killed and the result
    carries exit code 124.
    """
    started = time.monotonic()
    proc = subprocess.Popen(
        cmd,
        cwd=str(cwd) if cwd is not None else None,
        stdin=subprocess.PIPE if stdin_text is not None else subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT if merge_stderr else subprocess.PIPE,
        text=True,
        encoding="utf-8",
        errors="replace",
        start_new_session=True,
    )
    stdout = ""
    stderr = ""
    timed_out = False
    try:
        stdout, stderr = proc.communicate(input=stdin_text, timeout=timeout_sec)
    except subprocess.TimeoutExpired:
        timed_out = True
        _terminate_process_tree(proc)
        stdout, stderr = _safe_communicate(proc)
    except KeyboardInterrupt:
        _terminate_process_tree(proc)
        _safe_communicate(proc)
        raise

    stdout = stdout or ""
    stderr = stderr or ""
    elapsed = time.monotonic() - started
    if timed_out:
        timeout_msg = f"command timed out after {timeout_sec}s"
        if merge_stderr:
            stdout = f"{stdout}\n{timeout_msg}" if stdout else timeout_msg
        else:
            stderr = f"{stderr}\n{timeout_msg}" if stderr else timeout_msg
        return CommandResult(
            ok=False,
            stdout=stdout,
            stderr=stderr,
            exit_code=124,
            elapsed_sec=elapsed,
        )

    exit_code = int(proc.returncode) if proc.returncode is not None else 1
    return CommandResult(
        ok=exit_code == 0,
        stdout=stdout,
        stderr=stderr,
        exit_code=exit_code,
        elapsed_sec=elapsed,
    )


def stream_command(
    cmd: List[str],
    on_line: LineCallback,
    cwd: Optional[str | Path] = None,
    stdin_text: Optional[str] = None,
) -> StreamResult:
    """Run ``cmd`` and hand every output line to ``on_line(stream, line)``.

    ``stream`` is ``"STDOUT"`` or ``"STDERR"``. Each pipe is drained by its own
    reader thread; both readers have finished before this returns. There is no
    timeout.
    """
    started = time.monotonic()
    proc = subprocess.Popen(
        cmd,
        cwd=str(cwd) if cwd is not None else None,
        stdin=subprocess.PIPE if stdin_text is not None else subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        encoding="utf-8",
        errors="replace",
        start_new_session=True,
    )
    readers = [
        threading.Thread(target=_pump_lines, args=(proc.stdout, "STDOUT", on_line), daemon=True),
        threading.Thread(target=_pump_lines, args=(proc.stderr, "STDERR", on_line), daemon=True),
    ]
    for reader in readers:
        reader.start()

    try:
        if stdin_text is not None and proc.stdin is not None:
            try:
                proc.stdin.write(stdin_text)
            except BrokenPipeError:
                # Child exited without reading its prompt; the exit code says why.
                pass
            finally:
                try:
                    proc.stdin.close()
                except BrokenPipeError:
                    pass
        proc.wait()
    except KeyboardInterrupt:
        _terminate_process_tree(proc)
        raise
    finally:
        for reader in readers:
            reader.join()

    return StreamResult(exit_code=int(proc.returncode), elapsed_sec=time.monotonic() - started)


def ensure_success(result: CommandResult, context: str) -> None:
    if result.ok:
        return
    cmd = context.strip()
    out = result.stdout.strip()
    err = result.stderr.strip()
    message = f"{cmd} failed (exit={result.exit_code})"
    if out:
        message += f"\nstdout:\n{out}"
    if err:
        message += f"\nstderr:\n{err}"
    raise CommandError(message)


def shell_quote(parts: List[str]) -> str:
    return " ".join(shlex.quote(p) for p in parts)


def _pump_lines(pipe: Optional[IO[str]], stream: str, on_line: LineCallback) -> None:
    if pipe is None:
        return
    with pipe:
        for raw in pipe:
            on_line(stream, raw.rstrip("\r\n"))


def _safe_communicate(proc: subprocess.Popen[str]) -> tuple[str, str]:
    try:
        out, err = proc.communicate(timeout=1)
    except subprocess.TimeoutExpired:
        _terminate_process_tree(proc)
        try:
            out, err = proc.communicate(timeout=1)
        except Exception:  # noqa: BLE001
            out, err = "", ""
    except Exception:  # noqa: BLE001
        out, err = "", ""
    return out or "", err or ""


def _terminate_process_tree(proc: subprocess.Popen[str]) -> None:
    if proc.poll() is not None:
        return
    try:
        if hasattr(os, "killpg"):
            os.killpg(proc.pid, signal.SIGTERM)
        else:
            proc.terminate()
    except ProcessLookupError:
        return
    except Exception:  # noqa: BLE001
        try:
            proc.terminate()
        except Exception:  # noqa: BLE001
            pass
    try:
        proc.wait(timeout=2)
        return
    except subprocess.TimeoutExpired:
        pass
    try:
        if hasattr(os, "killpg"):
            os.killpg(proc.pid, signal.SIGKILL)
        else:
            proc.kill()
    except Exception:  # noqa: BLE001
        try:
            proc.kill()
        except Exception:  # noqa: BLE001
            pass
