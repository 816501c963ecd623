from __future__ import annotations

import logging

from ..build_context import BuildContext
from ..lib.subvolumes import create_subvolumes

logger = logging.getLogger(__name__)


class SubvolumeLayoutStep:
    step_id = "40_subvolumes"

    def run(self, ctx: BuildContext) -> None:
        if ctx.data is None:
            raise RuntimeError("Data partition not resolved")

        scratch = ctx.scratch_mount
        ctx.scratch_dirs.append(scratch)
        ctx.subvolumes = create_subvolumes(ctx.data, ctx.cfg.roles, str(scratch), dry_run=ctx.dry_run)
        logger.info("Layout %s: %s", ctx.cfg.layout.value, sorted(sv.name for sv in ctx.subvolumes.values()))
