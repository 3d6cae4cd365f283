"""
loop_agent.transcript

Line-oriented log sink shared by the controller and subprocess readers.

The base sink fans out to stdout and the session ``log`` file. A phase can
temporarily add its own transcript file with ``TranscriptSink.scoped``; the
extra file is detached again on every exit path.
"""
from __future__ import annotations

import itertools
import logging
import sys
import time
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Any, Iterator, List, Optional

LOG_FORMAT = "%(asctime)s %(message)s"
LOG_DATEFMT = "%Y/%m/%d %H:%M:%S"

_SINK_IDS = itertools.count(1)


class TranscriptSink:
    def __init__(self, log_path: str | Path, *, stream: Optional[IO[str]] = None):
        self.log_path = Path(log_path)
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        self._formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)
        # One private logger per sink so concurrent sessions (and tests) never
        # share handlers.
        self._logger = logging.getLogger(f"{__name__}.sink{next(_SINK_IDS)}")
        self._logger.setLevel(logging.INFO)
        self._logger.propagate = False

        file_handler = logging.FileHandler(self.log_path, mode="a", encoding="utf-8")
        stream_handler = logging.StreamHandler(stream if stream is not None else sys.stdout)
        self._base_handlers: List[logging.Handler] = [stream_handler, file_handler]
        for handler in self._base_handlers:
            handler.setFormatter(self._formatter)
            self._logger.addHandler(handler)

    def log(self, *parts: Any) -> None:
        """Write one line; parts are joined with single spaces."""
        self._logger.info(" ".join(str(part) for part in parts))

    @contextmanager
    def scoped(self, path: str | Path) -> Iterator["TranscriptSink"]:
        handler = logging.FileHandler(Path(path), mode="a", encoding="utf-8")
        handler.setFormatter(self._formatter)
        self._logger.addHandler(handler)
        try:
            yield self
        finally:
            self._logger.removeHandler(handler)
            handler.close()

    @property
    def active_handlers(self) -> int:
        return len(self._logger.handlers)

    def close(self) -> None:
        for handler in list(self._logger.handlers):
            self._logger.removeHandler(handler)
            handler.close()


@contextmanager
def trace(sink: TranscriptSink, tag: str) -> Iterator[None]:
    started = time.monotonic()
    sink.log(f"[{tag}]", "begin")
    try:
        yield
    finally:
        sink.log(f"[{tag}]", "end", "seconds:", f"{time.monotonic() - started:.3f}")
