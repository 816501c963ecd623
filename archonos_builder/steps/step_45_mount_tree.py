from __future__ import annotations

import logging

from ..build_context import BuildContext
from ..lib.mounts import build_mount_plan, execute_mount_plan

logger = logging.getLogger(__name__)


class MountTreeStep:
    step_id = "45_mount_tree"

    def run(self, ctx: BuildContext) -> None:
        if ctx.data is None or ctx.efi is None or not ctx.subvolumes:
            raise RuntimeError("Subvolume layout missing; run the subvolume stage first")

        ctx.mount_plan = build_mount_plan(
            ctx.cfg.layout,
            ctx.subvolumes,
            data=ctx.data,
            efi=ctx.efi,
            target_root=str(ctx.mount_dir),
            base_options=ctx.cfg.mount_options,
        )
        # ctx.mounted is updated entry by entry, also when a mount fails
        execute_mount_plan(ctx.mount_plan, ctx.mounted, dry_run=ctx.dry_run)
        logger.info("Target tree mounted at %s (%d mounts)", ctx.mount_dir, ctx.mounted_count)
