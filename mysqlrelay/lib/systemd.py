from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from .command import CmdResult, run_cmd

logger = logging.getLogger(__name__)

ENABLED_STATES = frozenset({"enabled", "enabled-runtime"})


class DisableOutcome(str, enum.Enum):
    DISABLED = "disabled"
    NOT_PRESENT = "not-present"
    FAILED = "failed"


@dataclass
class DisableReport:
    outcomes: Dict[str, DisableOutcome] = field(default_factory=dict)

    def units(self, outcome: DisableOutcome) -> List[str]:
        return [u for u, o in self.outcomes.items() if o is outcome]

    def counts(self) -> Dict[str, int]:
        return {o.value: len(self.units(o)) for o in DisableOutcome}


def systemctl(*args: str, check: bool = True, dry_run: bool = False) -> CmdResult:
    return run_cmd(["systemctl", *args], check=check, dry_run=dry_run)


def is_active(unit: str) -> bool:
    return systemctl("is-active", "--quiet", unit, check=False).ok


def is_enabled(unit: str) -> bool:
    """True only for units enabled to start on boot.

    ``is-enabled`` also exits 0 for static, indirect and alias units, so the
    reported state is compared rather than the exit code.
    """

    r = systemctl("is-enabled", unit, check=False)
    return r.stdout.strip() in ENABLED_STATES


def unit_present(unit: str) -> bool:
    r = systemctl("show", "-p", "LoadState", "--value", unit, check=False)
    return r.ok and r.stdout.strip() not in {"", "not-found"}


def enable_and_start(unit: str, *, dry_run: bool = False) -> None:
    systemctl("enable", unit, dry_run=dry_run)
    systemctl("start", unit, dry_run=dry_run)


def restart(unit: str, *, dry_run: bool = False) -> None:
    systemctl("restart", unit, dry_run=dry_run)


def disable_units(units: Sequence[str], *, dry_run: bool = False) -> DisableReport:
    """Disable and stop each unit independently.

    A unit missing from this image is expected and reported as not-present;
    a failing disable is reported, never raised.
    """

    report = DisableReport()
    for unit in units:
        if not unit_present(unit):
            logger.info("Unit %s not present", unit)
            report.outcomes[unit] = DisableOutcome.NOT_PRESENT
            continue
        r = systemctl("disable", "--now", unit, check=False, dry_run=dry_run)
        if r.ok:
            logger.info("Disabled %s", unit)
            report.outcomes[unit] = DisableOutcome.DISABLED
        else:
            logger.warning("Failed to disable %s: %s", unit, r.stderr.strip())
            report.outcomes[unit] = DisableOutcome.FAILED
    return report


def unit_quiescent(unit: str) -> bool:
    """True when the unit is absent, or neither enabled nor running."""

    if not unit_present(unit):
        return True
    return not is_enabled(unit) and not is_active(unit)
