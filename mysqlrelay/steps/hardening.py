from __future__ import annotations

import logging
from typing import Sequence

from ..lib.systemd import DisableOutcome, disable_units, unit_quiescent
from ..pipeline import BaseStep, StepContext

logger = logging.getLogger(__name__)

# Not needed on a headless single-purpose forwarder. Security updates
# (unattended-upgrades, apt-daily timers) and ssh stay enabled.
NON_ESSENTIAL_UNITS = (
    "snapd.service",
    "ModemManager",
    "udisks2",
    "iscsid",
    "lvm2-lvmpolld",
    "rpcbind",
    "getty@tty1.service",
    "serial-getty@ttyS0.service",
    "networkd-dispatcher",
    "polkit",
)


class DisableServicesStep(BaseStep):
    step_id = "SERVICE_TRIM"

    def __init__(self, units: Sequence[str] = NON_ESSENTIAL_UNITS) -> None:
        self.units = tuple(units)

    def is_satisfied(self, ctx: StepContext) -> bool:
        return all(unit_quiescent(u) for u in self.units)

    def run(self, ctx: StepContext) -> None:
        report = disable_units(self.units, dry_run=ctx.dry_run)
        ctx.facts["service_report"] = report

        counts = report.counts()
        logger.info(
            "Services: %d disabled, %d not present, %d failed",
            counts[DisableOutcome.DISABLED.value],
            counts[DisableOutcome.NOT_PRESENT.value],
            counts[DisableOutcome.FAILED.value],
        )
        failed = report.units(DisableOutcome.FAILED)
        if failed:
            logger.warning("Could not disable: %s", ", ".join(failed))
