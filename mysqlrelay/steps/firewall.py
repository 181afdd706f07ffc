from __future__ import annotations

import logging
from pathlib import Path

from ..errors import ProvisionError
from ..lib.firewall import insert_rule, persist, persisted_rule_present, rule_present, tools
from ..lib.pkg import has_binary
from ..pipeline import BaseStep, StepContext

logger = logging.getLogger(__name__)


class FirewallRuleStep(BaseStep):
    """Open the listen port (falls back to MYSQL_PORT) and persist the rules."""

    step_id = "FIREWALL_RULE"

    def is_satisfied(self, ctx: StepContext) -> bool:
        port = ctx.config.listen_port
        return all(rule_present(t, port) for t in tools()) and persisted_rule_present(
            ctx.paths.iptables_rules_v4, port
        )

    def run(self, ctx: StepContext) -> None:
        port = ctx.config.listen_port

        if not has_binary("iptables"):
            raise ProvisionError("iptables is not available on this system")

        rules_v4 = ctx.paths.iptables_rules_v4
        if not Path(rules_v4).exists():
            logger.warning(
                "%s not found: persistence is not configured. Install iptables-persistent first.",
                rules_v4,
            )
            ctx.prompter.pause("Press ENTER to acknowledge this warning. The setup will now quit.")
            raise ProvisionError(f"Cannot persist firewall rules: {rules_v4} missing")

        available = tools()
        for tool in available:
            insert_rule(tool, port, dry_run=ctx.dry_run)

        persist("iptables", rules_v4, dry_run=ctx.dry_run)
        if "ip6tables" in available and Path(ctx.paths.iptables_rules_v6).exists():
            persist("ip6tables", ctx.paths.iptables_rules_v6, dry_run=ctx.dry_run)

    def verify(self, ctx: StepContext) -> bool:
        port = ctx.config.listen_port
        return rule_present("iptables", port) and persisted_rule_present(ctx.paths.iptables_rules_v4, port)
