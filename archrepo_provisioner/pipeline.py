from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Protocol, Sequence

from .context import RunContext
from .errors import (
    EXIT_DESTROY_FAILED,
    EXIT_GUEST_DESTROYED,
    EXIT_OK,
    EXIT_PROVISION_FAILED,
    DestroyError,
    ProvisionError,
)
from .model import RunState

logger = logging.getLogger(__name__)


class Step(Protocol):
    """A single provisioning step."""

    step_id: str
    state: Optional[RunState]

    def run(self, ctx: RunContext) -> None:
        ...


@dataclass
class PipelineResult:
    state: RunState
    ran_steps: List[str] = field(default_factory=list)
    failed_step: Optional[str] = None
    error: Optional[BaseException] = None
    rollback_error: Optional[BaseException] = None
    destroy_error: Optional[DestroyError] = None

    @property
    def exit_code(self) -> int:
        if self.state is RunState.SUCCESS:
            return EXIT_OK
        if self.destroy_error is not None:
            return EXIT_DESTROY_FAILED
        if self.state is RunState.DESTROYED:
            return EXIT_GUEST_DESTROYED
        if isinstance(self.error, ProvisionError):
            return self.error.exit_code
        return EXIT_PROVISION_FAILED

    @property
    def path_taken(self) -> str:
        if self.state is RunState.SUCCESS:
            return "success"
        if self.destroy_error is not None:
            return "destroy_failed"
        return {
            RunState.ABORTED: "aborted",
            RunState.ROLLED_BACK: "rolled_back",
            RunState.DESTROYED: "destroyed",
        }.get(self.state, self.state.value)


def run_pipeline(
    ctx: RunContext,
    steps: Sequence[Step],
    *,
    rollback: Callable[[RunContext], None],
    destroy: Callable[[RunContext], None],
) -> PipelineResult:
    """Run steps strictly in order; on failure roll back, then destroy if that fails.

    Rollback only applies once a snapshot exists; earlier failures abort.
    """

    run = ctx.run
    result = PipelineResult(state=run.state)
    current: Optional[str] = None

    try:
        for step in steps:
            current = step.step_id
            if step.state is not None:
                run.transition(step.state)
            logger.info("Running step %s", step.step_id)
            step.run(ctx)
            result.ran_steps.append(step.step_id)
    except Exception as e:
        logger.error("Step %s failed: %s", current, e)
        run.errors.append({"step": str(current), "error": str(e)})
        result.failed_step = current
        result.error = e

        if run.snapshot is None:
            run.transition(RunState.ABORTED)
            logger.error("Run %s aborted before any change to guest %s", run.run_id, run.guest)
            result.state = run.state
            return result

        run.transition(RunState.ROLLING_BACK)
        try:
            rollback(ctx)
            run.transition(RunState.ROLLED_BACK)
            logger.warning("Run %s rolled back; guest %s kept", run.run_id, run.guest)
        except Exception as rb:
            logger.error("Rollback failed: %s", rb)
            run.errors.append({"step": "rollback", "error": str(rb)})
            result.rollback_error = rb
            try:
                destroy(ctx)
                run.transition(RunState.DESTROYED)
                logger.error("Guest %s destroyed after failed rollback", run.guest)
            except DestroyError as de:
                logger.critical("Guest %s could not be destroyed: %s", run.guest, de)
                run.errors.append({"step": "destroy", "error": str(de)})
                result.destroy_error = de

        result.state = run.state
        return result

    run.transition(RunState.SUCCESS)
    result.state = run.state
    return result
