from __future__ import annotations

import logging
import os
from typing import Optional

from ..errors import CommandError, ProvisionError
from ..lib.command import run_cmd
from ..lib.files import read_text, remove_path, write_file
from ..lib.nginx import (
    disable_http_includes,
    ensure_stream_include,
    has_stream_include,
    http_includes_disabled,
    render_stream_conf,
)
from ..lib.pkg import apt_install, apt_update, has_binary
from ..lib.systemd import enable_and_start, is_active, restart
from ..pipeline import BaseStep, StepContext

logger = logging.getLogger(__name__)

UNIT = "nginx"


def stream_conf_path(ctx: StepContext) -> str:
    return os.path.join(ctx.paths.nginx_stream_dir, ctx.config.proxy_config_file)


def config_valid() -> bool:
    return run_cmd(["nginx", "-t"], check=False).ok


class InstallNginxStep(BaseStep):
    step_id = "NGINX_INSTALL"

    def is_satisfied(self, ctx: StepContext) -> bool:
        return has_binary("nginx") and is_active(UNIT)

    def run(self, ctx: StepContext) -> None:
        apt_update(dry_run=ctx.dry_run)
        apt_install(["nginx"], dry_run=ctx.dry_run)
        enable_and_start(UNIT, dry_run=ctx.dry_run)

    def verify(self, ctx: StepContext) -> bool:
        return is_active(UNIT)


class ConfigureStreamProxyStep(BaseStep):
    """Turn nginx into a pure TCP forwarder for MySQL.

    Edits nginx.conf (stream include inside the stream block, HTTP vhost
    includes commented out), writes the stream.d file, validates, restarts.
    A configuration that fails ``nginx -t`` is rolled back.
    """

    step_id = "NGINX_STREAM_PROXY"

    def _conf_in_place(self, ctx: StepContext) -> bool:
        main_conf = read_text(ctx.paths.nginx_conf)
        if main_conf is None:
            return False
        return (
            has_stream_include(main_conf)
            and http_includes_disabled(main_conf)
            and read_text(stream_conf_path(ctx)) == render_stream_conf(ctx.config)
        )

    def is_satisfied(self, ctx: StepContext) -> bool:
        return self._conf_in_place(ctx) and config_valid() and is_active(UNIT)

    def _rollback(self, ctx: StepContext, main_conf: str, previous_stream: Optional[str]) -> None:
        logger.warning("Restoring %s and %s", ctx.paths.nginx_conf, stream_conf_path(ctx))
        write_file(ctx.paths.nginx_conf, main_conf, dry_run=ctx.dry_run)
        if previous_stream is None:
            remove_path(stream_conf_path(ctx), dry_run=ctx.dry_run)
        else:
            write_file(stream_conf_path(ctx), previous_stream, dry_run=ctx.dry_run)

    def run(self, ctx: StepContext) -> None:
        cfg = ctx.config
        main_conf = read_text(ctx.paths.nginx_conf)
        if main_conf is None:
            raise ProvisionError(f"{ctx.paths.nginx_conf} not found; is nginx installed?")
        previous_stream = read_text(stream_conf_path(ctx))

        logger.info("Configuring nginx TCP stream proxy to %s:%s", cfg.mysql_server, cfg.mysql_port)
        if cfg.upstream_keepalive:
            logger.info("UPSTREAM_KEEPALIVE=%s ignored: stream upstreams have no keepalive", cfg.upstream_keepalive)

        updated = disable_http_includes(ensure_stream_include(main_conf))
        if updated != main_conf:
            write_file(ctx.paths.nginx_conf, updated, dry_run=ctx.dry_run)

        write_file(stream_conf_path(ctx), render_stream_conf(cfg), dry_run=ctx.dry_run)

        try:
            run_cmd(["nginx", "-t"], dry_run=ctx.dry_run)
        except CommandError as e:
            self._rollback(ctx, main_conf, previous_stream)
            raise ProvisionError(f"Nginx configuration validation failed: {e}") from e

        restart(UNIT, dry_run=ctx.dry_run)

        logger.info(
            "Proxy: backend=%s:%s listen=%s/tcp upstream=%s file=%s",
            cfg.mysql_server,
            cfg.mysql_port,
            cfg.listen_port,
            cfg.upstream_name,
            stream_conf_path(ctx),
        )
        logger.info(
            "Timeouts: connect=%s proxy=%s; resilience: max_fails=%s fail_timeout=%s",
            cfg.proxy_connect_timeout,
            cfg.proxy_timeout,
            cfg.upstream_max_fails,
            cfg.upstream_fail_timeout,
        )

    def verify(self, ctx: StepContext) -> bool:
        if not is_active(UNIT):
            logger.error("Nginx failed to start after configuration")
            return False
        return self._conf_in_place(ctx)
