from __future__ import annotations

import logging

from ..build_context import BuildContext
from ..lib.partition import create_layout, verify_layout

logger = logging.getLogger(__name__)


class PartitionStep:
    step_id = "20_partition"

    def run(self, ctx: BuildContext) -> None:
        if ctx.device is None:
            raise RuntimeError("No loop device attached; run the image stage first")

        ctx.efi, ctx.data = create_layout(
            ctx.device,
            ctx.cfg.efi_size,
            wait_seconds=ctx.cfg.loop_wait_seconds,
            dry_run=ctx.dry_run,
        )
        verify_layout(ctx.device, ctx.cfg.efi_size, dry_run=ctx.dry_run)
        logger.info("EFI partition: %s, data partition: %s", ctx.efi.node, ctx.data.node)
