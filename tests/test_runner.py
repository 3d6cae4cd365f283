"""Tests for the process runner and agent driver against real child processes."""

import sys

import pytest

from loop_agent.agents import AgentDriver
from loop_agent.runner import InvocationError, ProcessRunner

PY = sys.executable


@pytest.fixture
def process_runner(session):
    session.begin_iteration(1)
    return ProcessRunner(session)


class TestProcessRunner:
    def test_transcript_has_exec_line_tagged_output_and_footer(self, process_runner, session):
        script = "import sys; print('hello'); print('oops', file=sys.stderr)"

        process_runner.run([PY, "-c", script], "ITER-1-AGENT-SPEC")

        text = (session.iteration_dir / "ITER-1-AGENT-SPEC.txt").read_text(encoding="utf-8")
        assert "[EXEC] command: " in text
        assert "[ITER-1-AGENT-SPEC-STDOUT] hello" in text
        assert "[ITER-1-AGENT-SPEC-STDERR] oops" in text
        assert "exit code: 0 seconds:" in text

    def test_trace_lines_stay_in_base_log(self, process_runner, session):
        process_runner.run([PY, "-c", "pass"], "GIT-STATUS")

        log_text = session.sink.log_path.read_text(encoding="utf-8")
        assert "[GIT-STATUS] begin" in log_text
        assert "[GIT-STATUS] end seconds:" in log_text
        transcript = (session.iteration_dir / "GIT-STATUS.txt").read_text(encoding="utf-8")
        assert "[GIT-STATUS] begin" not in transcript

    def test_non_zero_exit_is_fatal_and_restores_sink(self, process_runner, session):
        handlers = session.sink.active_handlers

        with pytest.raises(InvocationError) as excinfo:
            process_runner.run([PY, "-c", "raise SystemExit(5)"], "ITER-1-AGENT-RED-1")
        session.sink.log("after failure")

        assert excinfo.value.exit_code == 5
        assert session.sink.active_handlers == handlers
        transcript = (session.iteration_dir / "ITER-1-AGENT-RED-1.txt").read_text(encoding="utf-8")
        assert "after failure" not in transcript
        assert "exit code: 5" in transcript

    def test_spawn_failure_is_fatal(self, process_runner, session, tmp_path):
        with pytest.raises(InvocationError):
            process_runner.run([str(tmp_path / "no-such-agent")], "ITER-1-AGENT-INIT")

    def test_startup_transcripts_land_in_session_dir(self, session):
        runner = ProcessRunner(session)

        runner.run([PY, "-c", "print('ok')"], "GIT-STATUS")

        assert (session.dir / "GIT-STATUS.txt").exists()


class TestAgentDriver:
    def test_stdin_prompt_is_recorded_before_run(self, session):
        session.begin_iteration(1)
        session.config.agent.command = PY
        session.config.agent.args = [
            "-c",
            "import sys, pathlib; "
            "p = pathlib.Path(sys.argv[1]); "
            "print('match' if p.read_text(encoding='utf-8') == sys.stdin.read() else 'differ')",
            str(session.iteration_dir / "red-prompt.txt"),
            "--prompt",
        ]
        driver = AgentDriver(session, ProcessRunner(session))

        call = driver.invoke("make it fail\n", phase="RED-1", record="red-prompt.txt")

        assert call.tag == "ITER-1-AGENT-RED-1"
        transcript = (session.iteration_dir / "ITER-1-AGENT-RED-1.txt").read_text(encoding="utf-8")
        assert "[ITER-1-AGENT-RED-1-STDOUT] match" in transcript

    def test_argument_prompt_follows_prompt_flag(self, session):
        session.begin_iteration(1)
        session.config.agent.command = PY
        session.config.agent.args = ["-c", "import sys; print(sys.argv[1:])", "--prompt"]
        driver = AgentDriver(session, ProcessRunner(session))

        driver.invoke("/init", phase="INIT", record="init-prompt.txt", via_stdin=False)

        transcript = (session.iteration_dir / "ITER-1-AGENT-INIT.txt").read_text(encoding="utf-8")
        assert "['--prompt', '/init']" in transcript
        assert (session.iteration_dir / "init-prompt.txt").read_text(encoding="utf-8") == "/init"

    def test_default_command_matches_agent_contract(self, session):
        driver = AgentDriver(session, ProcessRunner(session))

        assert driver.base_command == ["iflow", "-y", "-d", "--thinking", "--prompt"]
