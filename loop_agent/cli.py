"""
loop_agent.cli

CLI entrypoint.
"""
from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import List, Optional

from rich.console import Console

from .config import load_loop_config
from .controller import replay_events, run_session, start_session
from .preflight import run_preflight
from .shell import CommandError

console = Console()
err_console = Console(stderr=True)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="loop-agent")
    sub = parser.add_subparsers(dest="cmd", required=True)

    run_p = sub.add_parser("run", help="run the spec/red/green loop in the current repository")
    run_p.add_argument("--config", default=None, help="optional loop config yaml")

    replay_p = sub.add_parser("replay", help="replay a session event log and print aggregate counts")
    replay_p.add_argument("--session-dir", required=True)

    pre_p = sub.add_parser("preflight", help="check git, agent, validator and tasks directory")
    pre_p.add_argument("--config", default=None, help="optional loop config yaml")

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "run":
        raise SystemExit(_run(args.config))

    if args.cmd == "replay":
        summary = replay_events(session_dir=args.session_dir)
        console.print(json.dumps(summary, indent=2, ensure_ascii=False), highlight=False, markup=False, soft_wrap=True)
        return

    if args.cmd == "preflight":
        result = run_preflight(load_loop_config(args.config), Path.cwd())
        console.print(json.dumps(result, indent=2), highlight=False, markup=False, soft_wrap=True)
        if not result["ok"]:
            raise SystemExit(1)
        return

    raise SystemExit(2)


def _run(config_path: Optional[str]) -> int:
    try:
        config = load_loop_config(config_path)
        ctx = start_session(config=config, root=Path.cwd())
    except (OSError, ValueError) as exc:
        err_console.print(f"[FATAL] {exc}", highlight=False, markup=False, soft_wrap=True)
        return 1

    session = ctx.session
    try:
        manifest = run_session(ctx)
    except KeyboardInterrupt:
        session.sink.log("[SIGNAL] interrupted")
        session.finish("interrupted", "interrupted")
        return 130
    except (CommandError, OSError) as exc:
        session.sink.log("[FATAL]", exc)
        session.finish("failed", str(exc))
        return 1
    except Exception as exc:  # noqa: BLE001
        error = f"{type(exc).__name__}: {exc}"
        session.sink.log("[FATAL]", error)
        session.finish("failed", error)
        return 1
    finally:
        session.close()

    console.print("[green]loop complete[/green]")
    console.print(f"session: {manifest.session_id}")
    console.print(f"branch: {manifest.branch}")
    console.print(f"iterations: {manifest.iterations_completed}")
    console.print(f"manifest: {session.dir / 'manifest.json'}")
    return 0


if __name__ == "__main__":
    main()
