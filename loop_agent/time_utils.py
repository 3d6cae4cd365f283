"""
loop_agent.time_utils

Small time helpers shared across runtime components.
"""
from __future__ import annotations

import time
from datetime import datetime, timezone

SESSION_TIMESTAMP_FORMAT = "%y%m%d%H%M%S"


def now_ms() -> int:
    return int(time.time() * 1000)


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def session_timestamp(now: datetime | None = None) -> str:
    """Local wall-clock stamp used for the session directory and branch name."""
    return (now or datetime.now()).strftime(SESSION_TIMESTAMP_FORMAT)
