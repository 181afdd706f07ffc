from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence

from .checkpoints import is_checkpointed, mark_checkpoint
from .config import RelayConfig
from .errors import StepDeferred, VerificationError
from .lib.env import PATHS, Paths
from .prompts import Prompter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepContext:
    """Everything a step may read. The config is loaded once and never mutated.

    ``facts`` carries values discovered by probe steps (swap file path,
    computed swap size, tunnel id) to later steps in the same run.
    """

    config: RelayConfig
    prompter: Prompter
    paths: Paths = PATHS
    dry_run: bool = False
    facts: Dict[str, Any] = field(default_factory=dict)


class Step(Protocol):
    """A single idempotent step.

    ``is_satisfied`` and ``verify`` query live system state; ``run``
    performs the mutation. Probe steps set ``checkpointed = False`` and
    always run.
    """

    step_id: str
    checkpointed: bool

    def is_satisfied(self, ctx: StepContext) -> bool:
        ...

    def run(self, ctx: StepContext) -> None:
        ...

    def verify(self, ctx: StepContext) -> bool:
        ...


class BaseStep:
    step_id = ""
    checkpointed = True

    def is_satisfied(self, ctx: StepContext) -> bool:
        return False

    def run(self, ctx: StepContext) -> None:
        raise NotImplementedError

    def verify(self, ctx: StepContext) -> bool:
        return True


@dataclass(frozen=True)
class PipelineResult:
    ran_steps: List[str]
    skipped_steps: List[str]
    satisfied_steps: List[str]
    deferred_steps: List[str]


def run_pipeline(
    *,
    ctx: StepContext,
    steps: Sequence[Step],
    checkpoint_path: str,
    start_at: Optional[str] = None,
    stop_after: Optional[str] = None,
    force: bool = False,
) -> PipelineResult:
    """Run steps in order with checkpoint/resume semantics.

    Per step: checkpoint present -> skip; live state already satisfied ->
    record checkpoint; otherwise run, verify, and record. A failed
    verification raises VerificationError and leaves no checkpoint.
    """

    outcomes: Dict[str, List[str]] = {"ran": [], "skipped": [], "satisfied": [], "deferred": []}

    started = start_at is None

    for step in steps:
        if not started:
            if step.step_id == start_at:
                started = True
            else:
                continue

        try:
            outcome = _run_step(ctx, step, checkpoint_path, force=force)
        except Exception:
            logger.error("Step %s failed", step.step_id)
            raise
        outcomes[outcome].append(step.step_id)

        if stop_after is not None and step.step_id == stop_after:
            logger.info("Stopping after %s", stop_after)
            break

    return PipelineResult(
        ran_steps=outcomes["ran"],
        skipped_steps=outcomes["skipped"],
        satisfied_steps=outcomes["satisfied"],
        deferred_steps=outcomes["deferred"],
    )


def _run_step(ctx: StepContext, step: Step, checkpoint_path: str, *, force: bool) -> str:
    if not step.checkpointed:
        logger.info("Running probe %s", step.step_id)
        step.run(ctx)
        return "ran"

    if (not force) and is_checkpointed(checkpoint_path, step.step_id):
        logger.info("Skipping step %s (already completed)", step.step_id)
        return "skipped"

    if (not force) and step.is_satisfied(ctx):
        logger.info("Step %s already satisfied by live state", step.step_id)
        _record(ctx, checkpoint_path, step.step_id)
        return "satisfied"

    logger.info("Running step %s", step.step_id)
    try:
        step.run(ctx)
    except StepDeferred as e:
        logger.warning("Step %s left incomplete: %s", step.step_id, e)
        return "deferred"

    if not ctx.dry_run and not step.verify(ctx):
        raise VerificationError(f"{step.step_id}: verification against live state failed")
    _record(ctx, checkpoint_path, step.step_id)
    return "ran"


def _record(ctx: StepContext, checkpoint_path: str, step_id: str) -> None:
    if ctx.dry_run:
        logger.info("Would record checkpoint %s", step_id)
        return
    mark_checkpoint(checkpoint_path, step_id)
