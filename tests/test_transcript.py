"""Tests for the transcript sink and its scoped per-phase override."""

import io
import threading

import pytest

from loop_agent.transcript import TranscriptSink, trace


@pytest.fixture
def sink(tmp_path):
    stream = io.StringIO()
    sink = TranscriptSink(tmp_path / "session" / "log", stream=stream)
    sink.stream = stream
    yield sink
    sink.close()


class TestTranscriptSink:
    def test_base_sink_fans_out_to_stdout_and_log(self, sink):
        sink.log("[LOG]", "hello", 3)

        assert "[LOG] hello 3" in sink.stream.getvalue()
        assert "[LOG] hello 3" in sink.log_path.read_text(encoding="utf-8")

    def test_scoped_file_only_sees_lines_inside_scope(self, sink, tmp_path):
        phase_file = tmp_path / "PHASE.txt"
        sink.log("before")
        with sink.scoped(phase_file):
            sink.log("inside")
        sink.log("after")

        phase_text = phase_file.read_text(encoding="utf-8")
        assert "inside" in phase_text
        assert "before" not in phase_text
        assert "after" not in phase_text
        log_text = sink.log_path.read_text(encoding="utf-8")
        assert "before" in log_text and "inside" in log_text and "after" in log_text

    def test_scope_is_restored_on_error(self, sink, tmp_path):
        phase_file = tmp_path / "PHASE.txt"
        handlers_before = sink.active_handlers

        with pytest.raises(RuntimeError):
            with sink.scoped(phase_file):
                raise RuntimeError("boom")
        sink.log("after error")

        assert sink.active_handlers == handlers_before
        assert "after error" not in phase_file.read_text(encoding="utf-8")

    def test_lines_from_threads_stay_whole(self, sink):
        def _writer(n):
            for i in range(200):
                sink.log(f"[T{n}]", "x" * 50, i)

        threads = [threading.Thread(target=_writer, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        lines = sink.log_path.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 800
        assert all(line.split(" ")[2].startswith("[T") for line in lines)

    def test_line_format_has_date_and_time(self, sink):
        sink.log("stamp")

        date, time_of_day, message = sink.log_path.read_text(encoding="utf-8").strip().split(" ", 2)
        assert len(date.split("/")) == 3
        assert len(time_of_day.split(":")) == 3
        assert message == "stamp"


class TestTrace:
    def test_logs_begin_and_end_with_duration(self, sink):
        with trace(sink, "ITER-1"):
            sink.log("work")

        lines = [line.split(" ", 2)[2] for line in sink.log_path.read_text(encoding="utf-8").splitlines()]
        assert lines[0] == "[ITER-1] begin"
        assert lines[1] == "work"
        assert lines[2].startswith("[ITER-1] end seconds: ")

    def test_end_is_logged_on_error(self, sink):
        with pytest.raises(ValueError):
            with trace(sink, "VALIDATE"):
                raise ValueError("x")

        assert "[VALIDATE] end seconds:" in sink.log_path.read_text(encoding="utf-8")
