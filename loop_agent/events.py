"""
loop_agent.events

Append-only JSONL event writer for session replay.
"""
from __future__ import annotations

import json
from contextlib import contextmanager
from pathlib import Path
import threading
from typing import Any, Dict, Iterator

from .time_utils import now_ms


class EventLogger:
    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def log(self, event_type: str, payload: Dict[str, Any], *, span_id: str | None = None) -> None:
        event: Dict[str, Any] = {
            "ts_ms": now_ms(),
            "type": event_type,
            "payload": payload,
        }
        if span_id is not None:
            event["span_id"] = span_id
        self._append(event)

    def begin_span(
        self,
        span_id: str,
        *,
        parent_span_id: str | None = None,
        name: str,
    ) -> None:
        self._append(
            {
                "ts_ms": now_ms(),
                "type": "span_begin",
                "span_id": span_id,
                "parent_span_id": parent_span_id,
                "name": name,
            }
        )

    def end_span(
        self,
        span_id: str,
        *,
        outputs: Dict[str, Any] | None = None,
    ) -> None:
        event: Dict[str, Any] = {
            "ts_ms": now_ms(),
            "type": "span_end",
            "span_id": span_id,
        }
        if outputs:
            event["outputs"] = outputs
        self._append(event)

    @contextmanager
    def span(self, span_id: str, *, name: str, parent_span_id: str | None = None) -> Iterator[None]:
        self.begin_span(span_id, parent_span_id=parent_span_id, name=name)
        ok = False
        try:
            yield
            ok = True
        finally:
            self.end_span(span_id, outputs={"ok": ok})

    def _append(self, event: Dict[str, Any]) -> None:
        with self._lock:
            with self.path.open("a", encoding="utf-8") as fh:
                fh.write(json.dumps(event, ensure_ascii=False) + "\n")
