"""Append-only checkpoint log.

Each completed step appends one line::

    [2025-01-31 14:02:11] COMPLETED: NGINX_INSTALL

The presence of a ``COMPLETED: <STEP>`` marker is the only thing consulted
when deciding whether to skip a step. The log is never rewritten; it is only
removed by an explicit reset.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

_LINE_RE = re.compile(r"^\[(?P<ts>[^\]]*)\]\s+COMPLETED:\s+(?P<step>\S+)\s*$")


@dataclass(frozen=True)
class CheckpointEntry:
    timestamp: str
    step_name: str


def format_entry(step_name: str, *, now: Optional[datetime] = None) -> str:
    ts = (now or datetime.now()).strftime(TIMESTAMP_FORMAT)
    return f"[{ts}] COMPLETED: {step_name}"


def read_checkpoints(path: str) -> List[CheckpointEntry]:
    p = Path(path)
    if not p.exists():
        return []

    entries: List[CheckpointEntry] = []
    for line in p.read_text(encoding="utf-8").splitlines():
        m = _LINE_RE.match(line.strip())
        if m:
            entries.append(CheckpointEntry(timestamp=m.group("ts"), step_name=m.group("step")))
    return entries


def is_checkpointed(path: str, step_name: str) -> bool:
    return any(e.step_name == step_name for e in read_checkpoints(path))


def mark_checkpoint(path: str, step_name: str, *, clock: Callable[[], datetime] = datetime.now) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with p.open("a", encoding="utf-8") as f:
        f.write(format_entry(step_name, now=clock()) + "\n")
    logger.info("Checkpoint recorded: %s", step_name)


def reset_checkpoints(path: str) -> bool:
    p = Path(path)
    if not p.exists():
        return False
    p.unlink()
    logger.info("Removed checkpoint log %s", str(p))
    return True
