from __future__ import annotations

import logging
from typing import Callable, List, Optional, Protocol, Sequence

from .build_context import BuildContext
from .errors import StageFailed

logger = logging.getLogger(__name__)


class Step(Protocol):
    """A single provisioning stage."""

    step_id: str

    def run(self, ctx: BuildContext) -> None:
        ...


def run_pipeline(
    *,
    ctx: BuildContext,
    steps: Sequence[Step],
    on_stage_done: Optional[Callable[[BuildContext], None]] = None,
) -> List[str]:
    """Run steps strictly in order; the first failure aborts the rest.

    Failures are re-raised as StageFailed tagged with the stage id. Nothing is
    retried or repaired here; recovery is teardown's job.
    """

    ran: List[str] = []
    for step in steps:
        ctx.current_stage = step.step_id
        logger.info("Running stage %s", step.step_id)
        try:
            step.run(ctx)
        except StageFailed:
            raise
        except Exception as e:
            raise StageFailed(step.step_id, e) from e
        ctx.completed_stages.append(step.step_id)
        ran.append(step.step_id)
        if on_stage_done is not None:
            on_stage_done(ctx)

    ctx.current_stage = None
    return ran
