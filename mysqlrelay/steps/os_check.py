from __future__ import annotations

import logging

from ..errors import UserAborted
from ..lib.osprobe import RECOMMENDED_CODENAME, RECOMMENDED_VERSION_ID, read_os_release
from ..pipeline import BaseStep, StepContext

logger = logging.getLogger(__name__)


class CheckOsStep(BaseStep):
    """Reject anything but Ubuntu.

    With require_recommended, any release other than 22.04 (jammy) needs an
    explicit operator confirmation to continue. The proxy flow re-checks the
    host on every run (checkpointed=False).
    """

    step_id = "OS_CHECK"

    def __init__(self, *, require_recommended: bool = False, checkpointed: bool = True):
        self.require_recommended = require_recommended
        self.checkpointed = checkpointed

    def run(self, ctx: StepContext) -> None:
        info = read_os_release(ctx.paths.os_release)
        ctx.facts["os"] = info

        if not self.require_recommended or info.is_recommended:
            return

        logger.warning(
            "This setup is tested on Ubuntu %s (%s); found Ubuntu %s (%s)",
            RECOMMENDED_VERSION_ID,
            RECOMMENDED_CODENAME,
            info.version_id or "unknown",
            info.codename or "unknown",
        )
        if not ctx.prompter.confirm("Continue anyway?"):
            raise UserAborted("Setup cancelled by user")
