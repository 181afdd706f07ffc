from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Optional

from .lib.env import PATHS

DEFAULT_LOG_PATH = PATHS.log_default
FALLBACK_LOG_NAME = "mysqlrelay.log"

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_DATEFMT = "%Y-%m-%dT%H:%M:%S%z"
_CONFIGURED_ATTR = "_mysqlrelay_log_path"


def _open_first(candidates: Iterable[str]) -> tuple[Optional[logging.FileHandler], list[str]]:
    """First candidate that can be opened for appending, plus the ones that could not."""

    failed: list[str] = []
    for path in candidates:
        try:
            Path(path).parent.mkdir(parents=True, exist_ok=True)
            return logging.FileHandler(path), failed
        except OSError:
            failed.append(path)
    return None, failed


def configure_logging(log_path: str = DEFAULT_LOG_PATH, *, verbose: bool = False) -> Optional[str]:
    """Send the run's log to ``log_path`` and the console.

    Provisioning normally runs as root and writes under /var/log. A dry run
    as an ordinary user falls back to ``./mysqlrelay.log``; when neither is
    writable the run logs to the console only. Returns the file in use, or
    None for console-only.

    Calling it again only adjusts the level.
    """

    root = logging.getLogger()
    root.setLevel(logging.DEBUG if verbose else logging.INFO)

    if hasattr(root, _CONFIGURED_ATTR):
        return getattr(root, _CONFIGURED_ATTR)

    fmt = logging.Formatter(fmt=_FORMAT, datefmt=_DATEFMT)
    console = logging.StreamHandler()
    console.setFormatter(fmt)
    root.addHandler(console)

    handler, failed = _open_first([log_path, str(Path.cwd() / FALLBACK_LOG_NAME)])
    chosen = handler.baseFilename if handler is not None else None
    if handler is not None:
        handler.setFormatter(fmt)
        root.addHandler(handler)
    setattr(root, _CONFIGURED_ATTR, chosen)

    log = logging.getLogger(__name__)
    for path in failed:
        log.warning("Cannot write log file %s", path)
    if chosen is None:
        log.warning("Logging to console only")
    else:
        log.info("Logging to %s", chosen)
    return chosen
