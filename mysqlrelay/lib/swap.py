from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import List, Optional

from ..errors import ProvisionError
from .command import run_cmd

logger = logging.getLogger(__name__)

SMALL_RAM_THRESHOLD_GB = 2.0
SMALL_RAM_FACTOR = 2.0
LARGE_RAM_FACTOR = 1.5
SWAPPINESS = 10

_MEMTOTAL_RE = re.compile(r"^MemTotal:\s+(\d+)", re.MULTILINE)


def read_mem_kb(meminfo_path: str) -> int:
    p = Path(meminfo_path)
    try:
        text = p.read_text(encoding="utf-8")
    except OSError as e:
        raise ProvisionError(f"Cannot read memory information from {meminfo_path}") from e
    m = _MEMTOTAL_RE.search(text)
    if not m:
        raise ProvisionError("Unable to determine total memory")
    return int(m.group(1))


def mem_kb_to_gb(mem_kb: int) -> float:
    """KiB to GiB, rounded to two decimals before any comparison."""

    return float(f"{mem_kb / 1024 / 1024:.2f}")


def swap_size_for_ram_gb(ram_gb: float) -> str:
    """Swap target: 2x RAM below 2 GB, else 1.5x. Exactly 2.0 takes 1.5x."""

    factor = SMALL_RAM_FACTOR if ram_gb < SMALL_RAM_THRESHOLD_GB else LARGE_RAM_FACTOR
    return f"{ram_gb * factor:.2f}G"


def swap_size_for_mem_kb(mem_kb: int) -> str:
    return swap_size_for_ram_gb(mem_kb_to_gb(mem_kb))


def active_swaps() -> List[str]:
    r = run_cmd(["swapon", "--show=NAME", "--noheadings"], check=False)
    if not r.ok:
        return []
    return [line.strip() for line in r.stdout.splitlines() if line.strip()]


def is_swap_active(swapfile: str) -> bool:
    return swapfile in active_swaps()


def fstab_swap_entry(fstab_text: str) -> Optional[str]:
    for line in fstab_text.splitlines():
        fields = line.split()
        if not fields or fields[0].startswith("#"):
            continue
        if len(fields) >= 3 and fields[1] == "none" and fields[2] == "swap":
            return fields[0]
    return None


def fstab_has_entry(fstab_text: str, swapfile: str) -> bool:
    return any(line.split()[:1] == [swapfile] for line in fstab_text.splitlines())


def detect_swap_file(*, fstab_path: str, default: str = "/swapfile") -> str:
    """Active swap first, then fstab, then the default path."""

    active = active_swaps()
    if active:
        logger.info("Found active swap: %s", active[0])
        return active[0]

    p = Path(fstab_path)
    if p.exists():
        entry = fstab_swap_entry(p.read_text(encoding="utf-8"))
        if entry:
            logger.info("Found swap in fstab: %s", entry)
            return entry

    logger.info("No existing swap found, will use: %s", default)
    return default


def fstab_line(swapfile: str) -> str:
    return f"{swapfile} none swap sw 0 0"


def swappiness_conf() -> str:
    return f"vm.swappiness={SWAPPINESS}\n"
