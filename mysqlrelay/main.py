from __future__ import annotations

import argparse
import logging
import os
from pathlib import Path
from typing import Callable, List, Optional

from .checkpoints import read_checkpoints, reset_checkpoints
from .config import PROXY_FLOW, TUNNEL_FLOW, RelayConfig, load_config
from .errors import ProvisionError, UserAborted
from .lib.env import PATHS, Paths
from .logging_utils import DEFAULT_LOG_PATH, configure_logging
from .pipeline import PipelineResult, Step, StepContext, run_pipeline
from .prompts import Prompter
from .steps import (
    AuthenticateStep,
    CheckOsStep,
    ConfigureStreamProxyStep,
    CreateTunnelStep,
    DetectSwapStep,
    DisableServicesStep,
    FirewallRuleStep,
    InstallCloudflaredStep,
    InstallNginxStep,
    ProvisionSwapStep,
    SizeSwapStep,
    TrialRunTunnelStep,
    TunnelConfigStep,
    TunnelServiceStep,
    teardown_tunnel,
)

logger = logging.getLogger(__name__)

FLOW_CHECKPOINTS = {
    PROXY_FLOW: PATHS.proxy_checkpoints_default,
    TUNNEL_FLOW: PATHS.tunnel_checkpoints_default,
}


def build_proxy_steps() -> List[Step]:
    return [
        CheckOsStep(checkpointed=False),
        DetectSwapStep(),
        SizeSwapStep(),
        ProvisionSwapStep(),
        DisableServicesStep(),
        FirewallRuleStep(),
        InstallNginxStep(),
        ConfigureStreamProxyStep(),
    ]


def build_tunnel_steps() -> List[Step]:
    return [
        CheckOsStep(require_recommended=True),
        InstallCloudflaredStep(),
        AuthenticateStep(),
        CreateTunnelStep(),
        TunnelConfigStep(),
        TrialRunTunnelStep(),
    ]


def log_checkpoint_status(checkpoint_path: str) -> None:
    entries = read_checkpoints(checkpoint_path)
    if not entries:
        logger.info("No checkpoints found in %s. Setup not started.", checkpoint_path)
        return
    logger.info("Checkpoints in %s:", checkpoint_path)
    for e in entries:
        logger.info("[%s] COMPLETED: %s", e.timestamp, e.step_name)


def _context(config: RelayConfig, *, paths: Paths, prompter: Prompter, dry_run: bool) -> StepContext:
    return StepContext(config=config, prompter=prompter, paths=paths, dry_run=dry_run)


def run_proxy(
    *,
    config_path: str,
    checkpoint_path: str,
    paths: Paths = PATHS,
    prompter: Optional[Prompter] = None,
    start_at: Optional[str] = None,
    stop_after: Optional[str] = None,
    force: bool = False,
    dry_run: bool = False,
) -> PipelineResult:
    """Swap + nginx stream proxy flow."""

    prompter = prompter or Prompter()
    prompter.pause(
        f"Ensure '{config_path}' holds the MySQL server address and port. "
        "Press ENTER to continue or Ctrl+C to abort..."
    )

    config = load_config(config_path)
    config.require(PROXY_FLOW)
    logger.info(
        "MySQL server %s:%s, listen port %s, upstream %s",
        config.mysql_server,
        config.mysql_port,
        config.listen_port,
        config.upstream_name,
    )

    ctx = _context(config, paths=paths, prompter=prompter, dry_run=dry_run)
    result = run_pipeline(
        ctx=ctx,
        steps=build_proxy_steps(),
        checkpoint_path=checkpoint_path,
        start_at=start_at,
        stop_after=stop_after,
        force=force,
    )
    logger.info(
        "Setup complete: proxy forwarding %s/tcp to %s:%s",
        config.listen_port,
        config.mysql_server,
        config.mysql_port,
    )
    return result


def run_tunnel(
    *,
    config_path: str,
    checkpoint_path: str,
    paths: Paths = PATHS,
    prompter: Optional[Prompter] = None,
    start_at: Optional[str] = None,
    stop_after: Optional[str] = None,
    force: bool = False,
    dry_run: bool = False,
    service_settle_seconds: float = 3.0,
) -> PipelineResult:
    """Cloudflare Tunnel flow, with the systemd service as an operator opt-in."""

    prompter = prompter or Prompter()
    log_checkpoint_status(checkpoint_path)
    prompter.pause(
        f"Ensure '{config_path}' sets TUNNEL_NAME, TUNNEL_HOSTNAME, MYSQL_SERVER and MYSQL_PORT. "
        "Press ENTER to continue or Ctrl+C to abort..."
    )

    config = load_config(config_path)
    config.require(TUNNEL_FLOW)

    ctx = _context(config, paths=paths, prompter=prompter, dry_run=dry_run)
    result = run_pipeline(
        ctx=ctx,
        steps=build_tunnel_steps(),
        checkpoint_path=checkpoint_path,
        start_at=start_at,
        stop_after=stop_after,
        force=force,
    )

    if stop_after is None and prompter.confirm("Install tunnel as systemd service for automatic startup?"):
        service = run_pipeline(
            ctx=ctx,
            steps=[TunnelServiceStep(settle_seconds=service_settle_seconds)],
            checkpoint_path=checkpoint_path,
            force=force,
        )
        result = PipelineResult(
            ran_steps=result.ran_steps + service.ran_steps,
            skipped_steps=result.skipped_steps + service.skipped_steps,
            satisfied_steps=result.satisfied_steps + service.satisfied_steps,
            deferred_steps=result.deferred_steps + service.deferred_steps,
        )

    logger.info(
        "Tunnel %s: %s -> %s:%s (checkpoints in %s)",
        config.tunnel_name,
        config.tunnel_hostname,
        config.mysql_server,
        config.mysql_port,
        checkpoint_path,
    )
    logger.info("Next: point %s at the tunnel in the Cloudflare dashboard", config.tunnel_hostname)
    return result


def run_teardown(
    *,
    config_path: str,
    checkpoint_path: str,
    paths: Paths = PATHS,
    prompter: Optional[Prompter] = None,
    dry_run: bool = False,
) -> bool:
    """Returns False when the operator did not confirm."""

    prompter = prompter or Prompter()
    logger.warning(
        "This removes the cloudflared service, binary, apt repository, configuration and checkpoints"
    )
    if not prompter.confirm_typed("Are you sure you want to continue?"):
        logger.info("Cleanup cancelled.")
        return False

    # Teardown must work even after the settings file is gone.
    config = load_config(config_path) if Path(config_path).is_file() else RelayConfig()
    ctx = _context(config, paths=paths, prompter=prompter, dry_run=dry_run)
    teardown_tunnel(ctx, checkpoint_path=checkpoint_path)
    return True


def _require_root(dry_run: bool) -> None:
    if not dry_run and os.geteuid() != 0:
        raise ProvisionError("This command modifies the system and must be run as root (or use --dry-run)")


def _add_common(p: argparse.ArgumentParser, *, default_checkpoints: str) -> None:
    p.add_argument("--config", default=PATHS.config_default, help="Settings file (KEY=value or YAML)")
    p.add_argument("--checkpoints", default=default_checkpoints, help="Checkpoint log path")
    p.add_argument("--log", default=DEFAULT_LOG_PATH, help="Path to log file")
    p.add_argument("--dry-run", action="store_true", help="Log mutations instead of performing them")
    p.add_argument("--yes", action="store_true", help="Answer yes to every prompt")
    p.add_argument("--verbose", action="store_true", help="Log command output")


def _add_flow_options(p: argparse.ArgumentParser) -> None:
    p.add_argument("--start-at", default=None, help="Start at step name (e.g. SWAP_SETUP)")
    p.add_argument("--stop-after", default=None, help="Stop after step name")
    p.add_argument("--force", action="store_true", help="Re-run steps even if checkpointed")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="mysqlrelay", description="Provision a MySQL traffic forwarder")
    sub = p.add_subparsers(dest="command", required=True)

    proxy = sub.add_parser("proxy", help="Swap + nginx TCP stream proxy")
    _add_common(proxy, default_checkpoints=PATHS.proxy_checkpoints_default)
    _add_flow_options(proxy)

    tunnel = sub.add_parser("tunnel", help="Cloudflare Tunnel to the MySQL server")
    _add_common(tunnel, default_checkpoints=PATHS.tunnel_checkpoints_default)
    _add_flow_options(tunnel)

    teardown = sub.add_parser("teardown-tunnel", help="Remove the Cloudflare Tunnel setup")
    _add_common(teardown, default_checkpoints=PATHS.tunnel_checkpoints_default)

    for name, help_text in (("status", "Show checkpoint logs"), ("reset", "Delete a checkpoint log")):
        s = sub.add_parser(name, help=help_text)
        s.add_argument("--flow", choices=sorted(FLOW_CHECKPOINTS), default=None,
                       help="Which setup's log (status shows both when omitted)")
        s.add_argument("--checkpoints", default=None, help="Checkpoint log path (overrides --flow)")
        s.add_argument("--log", default=DEFAULT_LOG_PATH)
        s.add_argument("--verbose", action="store_true", help="Log command output")

    return p


def _checkpoint_logs(args: argparse.Namespace) -> List[str]:
    if args.checkpoints:
        return [args.checkpoints]
    if args.flow:
        return [FLOW_CHECKPOINTS[args.flow]]
    return list(FLOW_CHECKPOINTS.values())


def main(argv: Optional[list[str]] = None, *, input_fn: Callable[[str], str] = input) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "reset" and not (args.flow or args.checkpoints):
        parser.error("reset needs --flow or --checkpoints")
    configure_logging(log_path=args.log, verbose=args.verbose)

    if args.command == "status":
        for path in _checkpoint_logs(args):
            log_checkpoint_status(path)
        return 0
    if args.command == "reset":
        for path in _checkpoint_logs(args):
            reset_checkpoints(path)
        return 0

    prompter = Prompter(assume_yes=args.yes, input_fn=input_fn)
    try:
        _require_root(args.dry_run)
        if args.command == "proxy":
            run_proxy(
                config_path=args.config,
                checkpoint_path=args.checkpoints,
                prompter=prompter,
                start_at=args.start_at,
                stop_after=args.stop_after,
                force=args.force,
                dry_run=args.dry_run,
            )
        elif args.command == "tunnel":
            run_tunnel(
                config_path=args.config,
                checkpoint_path=args.checkpoints,
                prompter=prompter,
                start_at=args.start_at,
                stop_after=args.stop_after,
                force=args.force,
                dry_run=args.dry_run,
            )
        elif not run_teardown(
            config_path=args.config,
            checkpoint_path=args.checkpoints,
            prompter=prompter,
            dry_run=args.dry_run,
        ):
            return 1
    except UserAborted as e:
        logger.warning("Aborted: %s", e)
        return 1
    except ProvisionError as e:
        logger.error("Setup failed: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
