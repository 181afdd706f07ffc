from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


def read_text(path: str) -> Optional[str]:
    p = Path(path)
    if not p.exists():
        return None
    return p.read_text(encoding="utf-8")


def write_file(path: str, contents: str, *, mode: Optional[int] = None, dry_run: bool = False) -> None:
    p = Path(path)
    if dry_run:
        logger.info("Would write %s", str(p))
        return
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(contents, encoding="utf-8")
    if mode is not None:
        os.chmod(p, mode)
    logger.info("Wrote %s", str(p))


def append_line(path: str, line: str, *, dry_run: bool = False) -> None:
    p = Path(path)
    if dry_run:
        logger.info("Would append to %s: %s", str(p), line)
        return
    p.parent.mkdir(parents=True, exist_ok=True)
    with p.open("a", encoding="utf-8") as f:
        f.write(line.rstrip("\n") + "\n")


def copy_file(src: str, dst: str, *, mode: Optional[int] = None, dry_run: bool = False) -> None:
    s = Path(src)
    d = Path(dst)
    if not s.exists():
        raise FileNotFoundError(src)

    if dry_run:
        logger.info("Would copy %s -> %s", str(s), str(d))
        return

    d.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(s, d)
    if mode is not None:
        os.chmod(d, mode)


def remove_path(path: str, *, dry_run: bool = False) -> bool:
    """Remove a file or directory tree. Returns False when nothing was there."""

    p = Path(path)
    if not p.exists() and not p.is_symlink():
        return False
    if dry_run:
        logger.info("Would remove %s", str(p))
        return True
    if p.is_dir() and not p.is_symlink():
        shutil.rmtree(p)
    else:
        p.unlink()
    return True
