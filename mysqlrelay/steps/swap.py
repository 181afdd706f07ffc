from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

from ..errors import CommandError, ProvisionError, UserAborted
from ..lib.command import run_cmd
from ..lib.files import append_line, read_text, write_file
from ..lib.swap import (
    detect_swap_file,
    fstab_has_entry,
    fstab_line,
    is_swap_active,
    mem_kb_to_gb,
    read_mem_kb,
    swap_size_for_mem_kb,
    swappiness_conf,
)
from ..pipeline import BaseStep, StepContext

logger = logging.getLogger(__name__)


def _swapfile(ctx: StepContext) -> str:
    if "swapfile" not in ctx.facts:
        ctx.facts["swapfile"] = detect_swap_file(
            fstab_path=ctx.paths.fstab, default=ctx.paths.default_swapfile
        )
    return ctx.facts["swapfile"]


def _swap_size(ctx: StepContext) -> str:
    if "swap_size" not in ctx.facts:
        ctx.facts["swap_size"] = swap_size_for_mem_kb(read_mem_kb(ctx.paths.meminfo))
    return ctx.facts["swap_size"]


class DetectSwapStep(BaseStep):
    step_id = "SWAP_DETECT"
    checkpointed = False

    def run(self, ctx: StepContext) -> None:
        logger.info("Swap file: %s", _swapfile(ctx))


class SizeSwapStep(BaseStep):
    """Compute the swap target from installed RAM and have the operator confirm it."""

    step_id = "SWAP_SIZE"
    checkpointed = False

    def run(self, ctx: StepContext) -> None:
        mem_kb = read_mem_kb(ctx.paths.meminfo)
        ram_gb = mem_kb_to_gb(mem_kb)
        size = swap_size_for_mem_kb(mem_kb)
        ctx.facts["swap_size"] = size
        logger.info("Total system memory: %.2fGB -> swap size %s", ram_gb, size)

        swapfile = _swapfile(ctx)
        if is_swap_active(swapfile):
            logger.info("Swap %s already active; size confirmation not needed", swapfile)
            return
        if not ctx.prompter.confirm(f"Proceed with swap size {size} at {swapfile}?"):
            raise UserAborted("Swap setup declined by user")


class ProvisionSwapStep(BaseStep):
    """Allocate, format, activate and persist the swap file.

    A swap file that already exists is never resized: whatever its size, it
    satisfies the goal and is only activated.
    """

    step_id = "SWAP_SETUP"

    def is_satisfied(self, ctx: StepContext) -> bool:
        return is_swap_active(_swapfile(ctx))

    def _op(self, what: str, argv: Sequence[str], ctx: StepContext) -> None:
        try:
            run_cmd(argv, dry_run=ctx.dry_run)
        except CommandError as e:
            raise ProvisionError(f"Failed to {what} swap file {_swapfile(ctx)}: {e}") from e

    def run(self, ctx: StepContext) -> None:
        swapfile = _swapfile(ctx)
        size = _swap_size(ctx)

        p = Path(swapfile)
        if p.exists():
            logger.warning(
                "Swap file %s already exists (%d bytes, desired %s); not resizing",
                swapfile,
                p.stat().st_size,
                size,
            )
            try:
                run_cmd(["swapon", swapfile], dry_run=ctx.dry_run)
            except CommandError as e:
                raise ProvisionError(
                    f"Failed to activate existing swap file {swapfile}: {e}. "
                    "If an interrupted run left it unformatted, remove it and re-run."
                ) from e
            return

        logger.info("Creating swap file %s of size %s", swapfile, size)
        self._op("allocate", ["fallocate", "-l", size, swapfile], ctx)
        self._op("set permissions on", ["chmod", "600", swapfile], ctx)
        self._op("initialize", ["mkswap", swapfile], ctx)
        self._op("activate", ["swapon", swapfile], ctx)

        fstab = read_text(ctx.paths.fstab) or ""
        if not fstab_has_entry(fstab, swapfile):
            append_line(ctx.paths.fstab, fstab_line(swapfile), dry_run=ctx.dry_run)

        write_file(ctx.paths.swappiness_conf, swappiness_conf(), dry_run=ctx.dry_run)
        run_cmd(["sysctl", "-p", ctx.paths.swappiness_conf], dry_run=ctx.dry_run)

    def verify(self, ctx: StepContext) -> bool:
        swapfile = _swapfile(ctx)
        if is_swap_active(swapfile):
            logger.info("Swap %s active", swapfile)
            return True
        logger.error("Swap setup failed: %s is not active", swapfile)
        return False
