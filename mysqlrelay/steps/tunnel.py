from __future__ import annotations

import logging
import os
import time
from pathlib import Path

from ..errors import ProvisionError, StepDeferred
from ..lib.cloudflared import (
    CATCH_ALL_SERVICE,
    GPG_KEY_URL,
    apt_source_line,
    cert_path,
    credentials_source,
    find_tunnel,
    list_tunnels,
    load_ingress,
    render_ingress,
)
from ..lib.command import run_cmd
from ..lib.files import copy_file, read_text, write_file
from ..lib.osprobe import RECOMMENDED_CODENAME, read_os_release
from ..lib.pkg import apt_install, apt_update, has_binary
from ..lib.systemd import enable_and_start, is_active
from ..pipeline import BaseStep, StepContext

logger = logging.getLogger(__name__)

UNIT = "cloudflared"


def tunnel_config_file(ctx: StepContext) -> str:
    return os.path.join(ctx.config.tunnel_config_dir, "config.yml")


def tunnel_credentials_file(ctx: StepContext) -> str:
    return os.path.join(ctx.config.tunnel_config_dir, f"{ctx.config.tunnel_name}.json")


def _render(ctx: StepContext) -> str:
    cfg = ctx.config
    return render_ingress(
        tunnel_name=cfg.tunnel_name,
        credentials_file=tunnel_credentials_file(ctx),
        hostname=cfg.tunnel_hostname,
        backend_host=cfg.mysql_server,
        backend_port=cfg.mysql_port,
    )


class InstallCloudflaredStep(BaseStep):
    step_id = "CLOUDFLARED_INSTALL"

    def is_satisfied(self, ctx: StepContext) -> bool:
        return has_binary("cloudflared")

    def _codename(self, ctx: StepContext) -> str:
        info = ctx.facts.get("os") or read_os_release(ctx.paths.os_release)
        return info.codename or RECOMMENDED_CODENAME

    def run(self, ctx: StepContext) -> None:
        keyring = ctx.paths.cloudflared_keyring
        if not ctx.dry_run:
            Path(keyring).parent.mkdir(mode=0o755, parents=True, exist_ok=True)
        run_cmd(["curl", "-fsSL", GPG_KEY_URL, "-o", keyring], dry_run=ctx.dry_run)
        write_file(
            ctx.paths.cloudflared_apt_list,
            apt_source_line(keyring, self._codename(ctx)),
            dry_run=ctx.dry_run,
        )
        apt_update(dry_run=ctx.dry_run)
        apt_install(["cloudflared"], dry_run=ctx.dry_run)

    def verify(self, ctx: StepContext) -> bool:
        if not has_binary("cloudflared"):
            logger.error("Cloudflared installation failed")
            return False
        version = run_cmd(["cloudflared", "--version"], check=False)
        logger.info("Cloudflared installed: %s", version.stdout.strip())
        return True


class AuthenticateStep(BaseStep):
    """One-time browser login; produces ~/.cloudflared/cert.pem."""

    step_id = "CLOUDFLARE_AUTH"

    def is_satisfied(self, ctx: StepContext) -> bool:
        return Path(cert_path(ctx.paths.cloudflared_home)).exists()

    def run(self, ctx: StepContext) -> None:
        logger.info(
            "A browser window will open for authentication. On a headless server, "
            "open the printed URL in a browser to complete it."
        )
        ctx.prompter.pause("Press ENTER to continue...")
        run_cmd(["cloudflared", "tunnel", "login"], interactive=True, dry_run=ctx.dry_run)

    def verify(self, ctx: StepContext) -> bool:
        if self.is_satisfied(ctx):
            return True
        logger.error("Authentication failed: %s not found", cert_path(ctx.paths.cloudflared_home))
        return False


class CreateTunnelStep(BaseStep):
    """Create the named tunnel unless the listing already shows that name."""

    step_id = "TUNNEL_CREATE"

    def is_satisfied(self, ctx: StepContext) -> bool:
        found = find_tunnel(list_tunnels(), ctx.config.tunnel_name)
        if found:
            logger.info("Tunnel '%s' already exists (%s)", found.name, found.id)
        return found is not None

    def run(self, ctx: StepContext) -> None:
        run_cmd(["cloudflared", "tunnel", "create", ctx.config.tunnel_name], dry_run=ctx.dry_run)

    def verify(self, ctx: StepContext) -> bool:
        found = find_tunnel(list_tunnels(), ctx.config.tunnel_name)
        if found is None:
            logger.error("Tunnel creation failed: '%s' not listed", ctx.config.tunnel_name)
            return False
        ctx.facts["tunnel_id"] = found.id
        return True


class TunnelConfigStep(BaseStep):
    """Copy the tunnel credentials and render config.yml (ingress rules)."""

    step_id = "TUNNEL_CONFIG"

    def is_satisfied(self, ctx: StepContext) -> bool:
        return Path(tunnel_credentials_file(ctx)).exists() and read_text(tunnel_config_file(ctx)) == _render(ctx)

    def run(self, ctx: StepContext) -> None:
        cfg = ctx.config
        found = find_tunnel(list_tunnels(), cfg.tunnel_name)
        if found is None:
            if not ctx.dry_run:
                raise ProvisionError(f"Could not find tunnel UUID for {cfg.tunnel_name}")
            logger.info("Would look up the tunnel id for %s", cfg.tunnel_name)
        else:
            ctx.facts["tunnel_id"] = found.id
            source = credentials_source(ctx.paths.cloudflared_home, found.id)
            if not Path(source).exists():
                raise ProvisionError(f"Credentials file not found: {source}")
            copy_file(source, tunnel_credentials_file(ctx), mode=0o600, dry_run=ctx.dry_run)

        write_file(tunnel_config_file(ctx), _render(ctx), mode=0o644, dry_run=ctx.dry_run)

        logger.info(
            "Tunnel %s (%s): %s -> tcp://%s:%s, credentials %s",
            cfg.tunnel_name,
            ctx.facts.get("tunnel_id", "unknown"),
            cfg.tunnel_hostname,
            cfg.mysql_server,
            cfg.mysql_port,
            tunnel_credentials_file(ctx),
        )

    def verify(self, ctx: StepContext) -> bool:
        text = read_text(tunnel_config_file(ctx))
        if text is None or not Path(tunnel_credentials_file(ctx)).exists():
            return False
        rules = load_ingress(text).get("ingress") or []
        return (
            len(rules) >= 2
            and rules[0].get("hostname") == ctx.config.tunnel_hostname
            and rules[-1] == {"service": CATCH_ALL_SERVICE}
        )


class TrialRunTunnelStep(BaseStep):
    """Foreground run; the operator stops it with Ctrl+C and reports the result."""

    step_id = "TUNNEL_TEST"

    def is_satisfied(self, ctx: StepContext) -> bool:
        return is_active(UNIT)

    def run(self, ctx: StepContext) -> None:
        logger.info("The tunnel will start in test mode. Press Ctrl+C to stop it after verification.")
        ctx.prompter.pause("Press ENTER to start test...")

        try:
            run_cmd(
                ["cloudflared", "tunnel", "--config", tunnel_config_file(ctx), "run", ctx.config.tunnel_name],
                check=False,
                interactive=True,
                dry_run=ctx.dry_run,
            )
        except KeyboardInterrupt:
            logger.info("Tunnel test stopped by operator")

        if not ctx.prompter.confirm("Did the tunnel start successfully?"):
            raise StepDeferred("tunnel test marked as incomplete; re-run to retry")


class TunnelServiceStep(BaseStep):
    step_id = "TUNNEL_SERVICE"

    def __init__(self, *, settle_seconds: float = 3.0):
        self.settle_seconds = settle_seconds

    def is_satisfied(self, ctx: StepContext) -> bool:
        return is_active(UNIT)

    def run(self, ctx: StepContext) -> None:
        run_cmd(["cloudflared", "--config", tunnel_config_file(ctx), "service", "install"], dry_run=ctx.dry_run)
        enable_and_start(UNIT, dry_run=ctx.dry_run)
        if not ctx.dry_run:
            time.sleep(self.settle_seconds)

    def verify(self, ctx: StepContext) -> bool:
        if is_active(UNIT):
            logger.info("Cloudflared service installed and running")
            return True
        status = run_cmd(["systemctl", "status", UNIT, "--no-pager"], check=False)
        logger.error("Cloudflared service failed to start\n%s", status.stdout)
        return False
