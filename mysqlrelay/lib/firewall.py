from __future__ import annotations

import logging
from pathlib import Path
from typing import List

from .command import run_cmd
from .files import write_file
from .pkg import has_binary

logger = logging.getLogger(__name__)


def accept_rule(port: int) -> List[str]:
    return ["INPUT", "-p", "tcp", "--dport", str(port), "-j", "ACCEPT"]


def tools() -> List[str]:
    """iptables always, ip6tables when installed."""

    out = ["iptables"]
    if has_binary("ip6tables"):
        out.append("ip6tables")
    return out


def rule_present(tool: str, port: int) -> bool:
    return run_cmd([tool, "-C", *accept_rule(port)], check=False).ok


def insert_rule(tool: str, port: int, *, dry_run: bool = False) -> None:
    if rule_present(tool, port):
        logger.info("%s rule already present: ACCEPT tcp dport %s", tool, port)
        return
    logger.info("Adding %s rule: ACCEPT tcp dport %s on INPUT chain", tool, port)
    run_cmd([tool, "-I", *accept_rule(port)], dry_run=dry_run)


def persisted_rule_present(rules_path: str, port: int) -> bool:
    p = Path(rules_path)
    if not p.exists():
        return False
    needle = f"--dport {port} -j ACCEPT"
    return any(needle in line and "-p tcp" in line for line in p.read_text(encoding="utf-8").splitlines())


def persist(tool: str, rules_path: str, *, dry_run: bool = False) -> None:
    if dry_run:
        logger.info("Would save %s rules to %s", tool, rules_path)
        return
    r = run_cmd([f"{tool}-save"])
    write_file(rules_path, r.stdout)
