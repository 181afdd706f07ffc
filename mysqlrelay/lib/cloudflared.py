from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from typing import List, Optional

import yaml

from .command import run_cmd

logger = logging.getLogger(__name__)

APT_REPO_URL = "https://pkg.cloudflare.com/cloudflared"
GPG_KEY_URL = "https://pkg.cloudflare.com/cloudflare-main.gpg"
CATCH_ALL_SERVICE = "http_status:404"

_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)


@dataclass(frozen=True)
class TunnelInfo:
    id: str
    name: str


def apt_source_line(keyring: str, codename: str) -> str:
    return f"deb [signed-by={keyring}] {APT_REPO_URL} {codename} main\n"


def list_tunnels() -> str:
    r = run_cmd(["cloudflared", "tunnel", "list"], check=False)
    return r.stdout if r.ok else ""


def parse_tunnel_list(output: str) -> List[TunnelInfo]:
    """Rows of ``cloudflared tunnel list``: ID NAME CREATED CONNECTIONS."""

    out: List[TunnelInfo] = []
    for line in output.splitlines():
        fields = line.split()
        if len(fields) >= 2 and _UUID_RE.match(fields[0]):
            out.append(TunnelInfo(id=fields[0], name=fields[1]))
    return out


def find_tunnel(output: str, name: str) -> Optional[TunnelInfo]:
    """First listed tunnel whose row mentions ``name``.

    Matching is by name text on the listing row, not by id, so two tunnels
    whose names contain one another are indistinguishable here.
    """

    if not name:
        return None
    for line in output.splitlines():
        if name not in line:
            continue
        rows = parse_tunnel_list(line)
        if rows:
            return rows[0]
    return None


def credentials_source(cloudflared_home: str, tunnel_id: str) -> str:
    return os.path.join(os.path.expanduser(cloudflared_home), f"{tunnel_id}.json")


def cert_path(cloudflared_home: str) -> str:
    return os.path.join(os.path.expanduser(cloudflared_home), "cert.pem")


def render_ingress(
    *,
    tunnel_name: str,
    credentials_file: str,
    hostname: str,
    backend_host: str,
    backend_port: int,
) -> str:
    """Render config.yml routing the public hostname to a raw TCP backend.

    The trailing service-only rule is the catch-all cloudflared requires.
    """

    header = (
        "# ============================================================\n"
        "# Cloudflare Tunnel Configuration\n"
        "# Managed by: mysqlrelay\n"
        f"# Tunnel: {tunnel_name}\n"
        f"# Backend Service: {backend_host}:{backend_port}\n"
        f"# Public Hostname: {hostname}\n"
        "# ============================================================\n"
    )
    doc = {
        "tunnel": tunnel_name,
        "credentials-file": credentials_file,
        "ingress": [
            {"hostname": hostname, "service": f"tcp://{backend_host}:{backend_port}"},
            {"service": CATCH_ALL_SERVICE},
        ],
    }
    return header + "\n" + yaml.safe_dump(doc, sort_keys=False, default_flow_style=False)


def load_ingress(text: str) -> dict:
    data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ValueError("tunnel config must be a mapping")
    return data
