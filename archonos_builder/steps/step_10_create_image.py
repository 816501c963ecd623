from __future__ import annotations

import logging

from ..build_context import BuildContext
from ..lib import loopdev
from ..lib.command import run_cmd

logger = logging.getLogger(__name__)


class CreateImageStep:
    step_id = "10_create_image"

    def run(self, ctx: BuildContext) -> None:
        if not ctx.dry_run:
            for d in (ctx.work_dir, ctx.mount_dir, ctx.iso_dir):
                d.mkdir(parents=True, exist_ok=True)
            for stale in (ctx.image_path, ctx.iso_path):
                if stale.exists():
                    logger.info("Removing stale output %s", stale)
                    stale.unlink()

        logger.info("Creating %s disk image: %s", ctx.cfg.disk_size, ctx.image_path)
        run_cmd(["truncate", "-s", str(ctx.cfg.disk_size_bytes), str(ctx.image_path)], dry_run=ctx.dry_run)

        ctx.device = loopdev.attach(str(ctx.image_path), dry_run=ctx.dry_run)
