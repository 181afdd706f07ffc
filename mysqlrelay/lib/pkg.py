from __future__ import annotations

import logging
import shutil
from typing import Sequence

from .command import run_cmd

logger = logging.getLogger(__name__)

_APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}


def apt_update(*, dry_run: bool = False) -> None:
    run_cmd(["apt-get", "update"], env=_APT_ENV, dry_run=dry_run)


def apt_install(packages: Sequence[str], *, dry_run: bool = False) -> None:
    if not packages:
        return
    run_cmd(["apt-get", "install", "-y", *packages], env=_APT_ENV, dry_run=dry_run)


def apt_remove(packages: Sequence[str], *, dry_run: bool = False) -> bool:
    r = run_cmd(["apt-get", "remove", "-y", *packages], check=False, env=_APT_ENV, dry_run=dry_run)
    return r.ok


def has_binary(name: str) -> bool:
    return shutil.which(name) is not None
