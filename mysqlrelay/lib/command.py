from __future__ import annotations

import logging
import os
import shlex
import subprocess
from dataclasses import dataclass
from typing import Mapping, Sequence

from ..errors import CommandError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CmdResult:
    argv: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def _fmt_argv(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(a) for a in argv)


def run_cmd(
    argv: Sequence[str],
    *,
    check: bool = True,
    env: Mapping[str, str] | None = None,
    cwd: str | None = None,
    input_text: str | None = None,
    interactive: bool = False,
    dry_run: bool = False,
) -> CmdResult:
    """Run a command with consistent logging.

    - Always logs the command.
    - Captures stdout/stderr unless interactive, in which case the child
      inherits the terminal (browser logins, foreground tunnel runs).
    - dry_run logs but does not execute.
    """

    argv_list = list(argv)
    logger.info("CMD %s", _fmt_argv(argv_list))

    if dry_run:
        return CmdResult(argv=argv_list, returncode=0, stdout="", stderr="")

    full_env = dict(os.environ, **(env or {}))
    try:
        if interactive:
            p = subprocess.run(argv_list, cwd=cwd, env=full_env)
            stdout, stderr = "", ""
        else:
            p = subprocess.run(
                argv_list,
                input=input_text,
                text=True,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=cwd,
                env=full_env,
            )
            stdout, stderr = p.stdout or "", p.stderr or ""
    except FileNotFoundError as e:
        if check:
            raise CommandError(f"Command not found: {argv_list[0]}", argv=argv_list, returncode=127) from e
        return CmdResult(argv=argv_list, returncode=127, stdout="", stderr=str(e))

    if stdout:
        logger.debug("STDOUT %s", stdout.strip())
    if stderr:
        logger.debug("STDERR %s", stderr.strip())

    if check and p.returncode != 0:
        raise CommandError(
            f"Command failed ({p.returncode}): {_fmt_argv(argv_list)}\n{stderr}",
            argv=argv_list,
            returncode=p.returncode,
        )

    return CmdResult(argv=argv_list, returncode=p.returncode, stdout=stdout, stderr=stderr)
