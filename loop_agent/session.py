"""
loop_agent.session

The per-process context value every phase receives.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Optional

from .config import LoopConfig
from .events import EventLogger
from .schema import IterationRecord, SessionManifest, SessionStatus
from .time_utils import now_iso, session_timestamp
from .transcript import TranscriptSink

MAX_ITERATIONS = 500


@dataclass
class Session:
    session_id: str
    root: Path
    dir: Path
    config: LoopConfig
    validate_script: str
    sink: TranscriptSink
    events: EventLogger
    manifest: SessionManifest
    iteration: int = 0
    attempt: int = 1
    _span_seq: int = field(default=0, repr=False)

    @classmethod
    def create(
        cls,
        *,
        config: LoopConfig,
        root: str | Path,
        timestamp: Optional[str] = None,
        stream: Optional[IO[str]] = None,
        max_iterations: int = MAX_ITERATIONS,
        system: Optional[str] = None,
    ) -> "Session":
        root_path = Path(root).resolve()
        session_id = timestamp or session_timestamp()
        session_dir = root_path / config.paths.state_root / session_id
        session_dir.mkdir(parents=True, exist_ok=True)

        sink = TranscriptSink(session_dir / "log", stream=stream)
        validate_script = config.resolved_validate_script(system)
        manifest = SessionManifest(
            session_id=session_id,
            branch=f"{config.git.branch_prefix}{session_id}",
            validate_script=validate_script,
            max_iterations=max_iterations,
            started_at=now_iso(),
        )
        session = cls(
            session_id=session_id,
            root=root_path,
            dir=session_dir,
            config=config,
            validate_script=validate_script,
            sink=sink,
            events=EventLogger(session_dir / "events.jsonl"),
            manifest=manifest,
        )
        session.write_manifest()
        return session

    @property
    def branch(self) -> str:
        return self.manifest.branch

    @property
    def iter_tag(self) -> str:
        return f"ITER-{self.iteration}"

    @property
    def iteration_dir(self) -> Path:
        return self.dir / f"iter-{self.iteration}"

    @property
    def transcript_dir(self) -> Path:
        """Where subprocess transcripts land: the iteration dir, or the session dir before iteration 1."""
        if self.iteration <= 0:
            return self.dir
        return self.iteration_dir

    @property
    def tasks_dir(self) -> Path:
        return self.root / self.config.paths.tasks_dir

    @property
    def spec_path(self) -> Path:
        return self.root / self.config.paths.spec_file

    @property
    def record(self) -> IterationRecord:
        if not self.manifest.iterations or self.manifest.iterations[-1].iteration != self.iteration:
            raise RuntimeError(f"iteration {self.iteration} has not been started")
        return self.manifest.iterations[-1]

    def begin_iteration(self, iteration: int) -> Path:
        self.iteration = iteration
        self.attempt = 1
        self.iteration_dir.mkdir(parents=True, exist_ok=True)
        self.manifest.iterations.append(IterationRecord(iteration=iteration, started_at=now_iso()))
        self.events.log("iteration_started", {"iteration": iteration, "dir": str(self.iteration_dir)})
        return self.iteration_dir

    def finish_iteration(self) -> None:
        record = self.record
        record.finished_at = now_iso()
        self.events.log("iteration_finished", record.model_dump())
        self.write_manifest()

    def next_span_id(self, name: str) -> str:
        self._span_seq += 1
        return f"{self.iter_tag}:{self._span_seq}:{name}"

    def finish(self, status: SessionStatus, error: Optional[str] = None) -> None:
        self.manifest.status = status
        self.manifest.error = error
        self.manifest.finished_at = now_iso()
        self.events.log(
            "session_finished",
            {
                "status": status,
                "error": error,
                "iterations_completed": self.manifest.iterations_completed,
            },
        )
        self.write_manifest()

    def write_manifest(self) -> Path:
        path = self.dir / "manifest.json"
        path.write_text(self.manifest.model_dump_json(indent=2), encoding="utf-8")
        return path

    def close(self) -> None:
        self.sink.close()
