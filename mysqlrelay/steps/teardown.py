"""Remove everything the tunnel flow installed.

Each action is attempted independently and reported; nothing here aborts
the teardown. ``~/.cloudflared`` (account certificate and tunnel
credentials) is left in place so the tunnel can be recovered.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Tuple

from ..checkpoints import reset_checkpoints
from ..errors import CommandError
from ..lib.command import run_cmd
from ..lib.files import remove_path
from ..lib.pkg import apt_remove, apt_update, has_binary
from ..lib.systemd import is_active, is_enabled, systemctl
from ..pipeline import StepContext
from .tunnel import UNIT

logger = logging.getLogger(__name__)

DONE = "done"
SKIPPED = "skipped"
FAILED = "failed"


@dataclass(frozen=True)
class TeardownAction:
    description: str
    outcome: str


def _stop_service(ctx: StepContext) -> str:
    if not is_active(UNIT):
        return SKIPPED
    return DONE if systemctl("stop", UNIT, check=False, dry_run=ctx.dry_run).ok else FAILED


def _disable_service(ctx: StepContext) -> str:
    if not is_enabled(UNIT):
        return SKIPPED
    return DONE if systemctl("disable", UNIT, check=False, dry_run=ctx.dry_run).ok else FAILED


def _uninstall_service(ctx: StepContext) -> str:
    if not has_binary("cloudflared"):
        return SKIPPED
    r = run_cmd(["cloudflared", "service", "uninstall"], check=False, dry_run=ctx.dry_run)
    return DONE if r.ok else FAILED


def _remove(path: str) -> Callable[[StepContext], str]:
    def action(ctx: StepContext) -> str:
        return DONE if remove_path(path, dry_run=ctx.dry_run) else SKIPPED

    return action


def _daemon_reload(ctx: StepContext) -> str:
    return DONE if systemctl("daemon-reload", check=False, dry_run=ctx.dry_run).ok else FAILED


def _remove_package(ctx: StepContext) -> str:
    if not has_binary("cloudflared"):
        return SKIPPED
    removed = apt_remove(["cloudflared"], dry_run=ctx.dry_run)
    try:
        apt_update(dry_run=ctx.dry_run)
    except CommandError:
        logger.warning("apt-get update failed after removing cloudflared")
    return DONE if removed else FAILED


def teardown_tunnel(ctx: StepContext, *, checkpoint_path: str) -> List[TeardownAction]:
    paths = ctx.paths
    actions: List[Tuple[str, Callable[[StepContext], str]]] = [
        ("stop cloudflared service", _stop_service),
        ("disable cloudflared service", _disable_service),
        ("uninstall cloudflared service", _uninstall_service),
        (f"remove {paths.cloudflared_unit}", _remove(paths.cloudflared_unit)),
        ("systemctl daemon-reload", _daemon_reload),
        (f"remove {paths.cloudflared_apt_list}", _remove(paths.cloudflared_apt_list)),
        (f"remove {paths.cloudflared_keyring}", _remove(paths.cloudflared_keyring)),
        ("remove cloudflared package", _remove_package),
        (f"remove {ctx.config.tunnel_config_dir}", _remove(ctx.config.tunnel_config_dir)),
    ]

    report: List[TeardownAction] = []
    for description, fn in actions:
        try:
            outcome = fn(ctx)
        except OSError as e:
            logger.warning("%s failed: %s", description, e)
            outcome = FAILED
        logger.info("%s: %s", description, outcome)
        report.append(TeardownAction(description=description, outcome=outcome))

    if ctx.dry_run:
        logger.info("Would remove checkpoint log %s", checkpoint_path)
        outcome = DONE
    else:
        outcome = DONE if reset_checkpoints(checkpoint_path) else SKIPPED
    report.append(TeardownAction(description=f"remove {checkpoint_path}", outcome=outcome))

    logger.info("Kept %s (tunnel credentials and certificate) for recovery", paths.cloudflared_home)
    if ctx.config.tunnel_name:
        logger.info("To delete the tunnel itself: cloudflared tunnel delete %s", ctx.config.tunnel_name)
    return report
