"""Shared fixtures.

Commands never reach the host: ``fake_shell`` replaces the subprocess
module seen by ``mysqlrelay.lib.command`` and ``binaries`` controls what
``has_binary`` reports. Host paths are redirected into ``tmp_path``.
"""

import subprocess
from dataclasses import replace
from types import SimpleNamespace

import pytest

from mysqlrelay.config import RelayConfig
from mysqlrelay.lib.env import PATHS
from mysqlrelay.pipeline import StepContext
from mysqlrelay.prompts import Prompter

UBUNTU_JAMMY = """NAME="Ubuntu"
VERSION_ID="22.04"
VERSION_CODENAME=jammy
ID=ubuntu
ID_LIKE=debian
"""

MEMINFO_1GB = "MemTotal:        1048576 kB\nMemFree:          524288 kB\n"


class FakeShell:
    """Records argv lists; answers by longest matching argv prefix."""

    def __init__(self):
        self.calls = []
        self._rules = []

    def on(self, *prefix, returncode=0, stdout="", stderr="", handler=None):
        self._rules.append((tuple(prefix), returncode, stdout, stderr, handler))
        return self

    def run(self, argv, **kwargs):
        argv = list(argv)
        self.calls.append(argv)
        best = None
        for rule in self._rules:
            prefix = rule[0]
            if tuple(argv[: len(prefix)]) == prefix and (best is None or len(prefix) >= len(best[0])):
                best = rule
        if best is None:
            return subprocess.CompletedProcess(argv, 0, "", "")
        _, returncode, stdout, stderr, handler = best
        if handler is not None:
            returncode, stdout = handler(argv)
        return subprocess.CompletedProcess(argv, returncode, stdout, stderr)

    def ran(self, *prefix):
        return any(tuple(c[: len(prefix)]) == prefix for c in self.calls)

    def mutations(self, readonly=("systemctl is-active", "systemctl is-enabled", "systemctl show",
                                  "swapon --show", "iptables -C", "ip6tables -C", "cloudflared tunnel list",
                                  "cloudflared --version", "nginx -t")):
        return [c for c in self.calls if not any(" ".join(c).startswith(r) for r in readonly)]


@pytest.fixture
def fake_shell(monkeypatch):
    shell = FakeShell()
    monkeypatch.setattr(
        "mysqlrelay.lib.command.subprocess",
        SimpleNamespace(run=shell.run, PIPE=subprocess.PIPE),
    )
    return shell


@pytest.fixture
def binaries(monkeypatch):
    present = set()
    monkeypatch.setattr(
        "mysqlrelay.lib.pkg.shutil",
        SimpleNamespace(which=lambda name: f"/usr/bin/{name}" if name in present else None),
    )
    return present


@pytest.fixture
def host_paths(tmp_path):
    etc = tmp_path / "etc"
    etc.mkdir()
    (etc / "os-release").write_text(UBUNTU_JAMMY, encoding="utf-8")
    (etc / "fstab").write_text("UUID=abcd / ext4 defaults 0 1\n", encoding="utf-8")
    meminfo = tmp_path / "meminfo"
    meminfo.write_text(MEMINFO_1GB, encoding="utf-8")
    return replace(
        PATHS,
        os_release=str(etc / "os-release"),
        meminfo=str(meminfo),
        fstab=str(etc / "fstab"),
        default_swapfile=str(tmp_path / "swapfile"),
        swappiness_conf=str(etc / "sysctl.d" / "99-swappiness.conf"),
        nginx_conf=str(etc / "nginx" / "nginx.conf"),
        nginx_stream_dir=str(etc / "nginx" / "stream.d"),
        iptables_rules_v4=str(etc / "iptables" / "rules.v4"),
        iptables_rules_v6=str(etc / "iptables" / "rules.v6"),
        cloudflared_home=str(tmp_path / "home" / ".cloudflared"),
        cloudflared_keyring=str(tmp_path / "keyrings" / "cloudflare-main.gpg"),
        cloudflared_apt_list=str(etc / "apt" / "sources.list.d" / "cloudflared.list"),
        cloudflared_unit=str(etc / "systemd" / "system" / "cloudflared.service"),
    )


@pytest.fixture
def relay_config(tmp_path):
    return RelayConfig(
        raw={
            "MYSQL_SERVER": "10.0.1.55",
            "MYSQL_PORT": "3306",
            "LISTEN_PORT": "3306",
            "TUNNEL_NAME": "db-tunnel",
            "TUNNEL_HOSTNAME": "db.example.com",
            "TUNNEL_CONFIG_DIR": str(tmp_path / "etc" / "cloudflared"),
        }
    )


@pytest.fixture
def answers():
    """Scripted operator answers, consumed in order."""
    return []


@pytest.fixture
def make_ctx(relay_config, host_paths, answers):
    def _make(config=None, *, dry_run=False, assume_yes=False):
        prompter = Prompter(assume_yes=assume_yes, input_fn=lambda _msg: answers.pop(0))
        return StepContext(
            config=config or relay_config,
            prompter=prompter,
            paths=host_paths,
            dry_run=dry_run,
        )

    return _make
