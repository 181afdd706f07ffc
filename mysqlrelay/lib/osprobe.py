from __future__ import annotations

import logging
import shlex
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from ..errors import UnsupportedEnvironment

logger = logging.getLogger(__name__)

SUPPORTED_ID = "ubuntu"
RECOMMENDED_VERSION_ID = "22.04"
RECOMMENDED_CODENAME = "jammy"


@dataclass(frozen=True)
class OsRelease:
    id: str
    name: str
    version_id: str
    codename: str

    @property
    def is_recommended(self) -> bool:
        return self.version_id == RECOMMENDED_VERSION_ID and self.codename == RECOMMENDED_CODENAME


def parse_os_release(text: str) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        try:
            parts = shlex.split(value)
        except ValueError:
            parts = [value.strip("\"'")]
        out[key.strip()] = parts[0] if parts else ""
    return out


def _platform_name(platform: str) -> str:
    if platform.startswith("darwin"):
        return "macOS"
    if platform.startswith(("win32", "cygwin", "msys")):
        return "Windows"
    return platform


def read_os_release(path: str, *, platform: Optional[str] = None) -> OsRelease:
    """Identify the host, rejecting anything but Ubuntu."""

    platform = platform or sys.platform
    if not platform.startswith("linux"):
        raise UnsupportedEnvironment(f"Unsupported OS: {_platform_name(platform)}. Only Ubuntu is supported.")

    p = Path(path)
    if not p.exists():
        raise UnsupportedEnvironment("Cannot determine OS distribution. Only Ubuntu is supported.")

    fields = parse_os_release(p.read_text(encoding="utf-8", errors="ignore"))
    distro = fields.get("ID", "")
    if distro != SUPPORTED_ID:
        raise UnsupportedEnvironment(
            f"Unsupported Linux distribution: {distro or 'unknown'}. Only Ubuntu is supported."
        )

    info = OsRelease(
        id=distro,
        name=fields.get("NAME", ""),
        version_id=fields.get("VERSION_ID", ""),
        codename=fields.get("VERSION_CODENAME", ""),
    )
    logger.info("Ubuntu detected: %s %s (%s)", info.name, info.version_id, info.codename)
    return info
