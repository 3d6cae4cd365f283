"""
loop_agent.agents

The single agent-invocation operation every phase goes through.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List

from .prompts import persist_prompt
from .runner import Runner
from .session import Session


@dataclass
class AgentCall:
    phase: str
    tag: str
    record: Path
    via_stdin: bool


class AgentDriver:
    def __init__(self, session: Session, runner: Runner):
        self.session = session
        self.runner = runner

    @property
    def base_command(self) -> List[str]:
        agent = self.session.config.agent
        return [agent.command, *agent.args]

    def invoke(self, prompt: str, *, phase: str, record: str, via_stdin: bool = True) -> AgentCall:
        """Persist ``prompt`` as ``record`` in the iteration dir, then run the agent.

        With ``via_stdin`` the prompt is fed on standard input and ``--prompt``
        is passed without a value; otherwise it is appended as the flag's
        argument. Agent failures propagate as ``InvocationError``.
        """
        record_path = persist_prompt(self.session.iteration_dir, record, prompt)
        tag = f"{self.session.iter_tag}-AGENT-{phase}"
        cmd = self.base_command if via_stdin else [*self.base_command, prompt]

        self.session.events.log(
            "agent_invocation",
            {
                "iteration": self.session.iteration,
                "phase": phase,
                "record": record_path.name,
                "via_stdin": via_stdin,
            },
        )
        self.runner.run(cmd, tag, stdin_text=prompt if via_stdin else None)
        return AgentCall(phase=phase, tag=tag, record=record_path, via_stdin=via_stdin)
