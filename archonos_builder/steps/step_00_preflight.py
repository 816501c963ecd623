from __future__ import annotations

import logging

from ..build_context import BuildContext
from ..lib import preflight

logger = logging.getLogger(__name__)


class PreflightStep:
    step_id = "00_preflight"

    def run(self, ctx: BuildContext) -> None:
        preflight.check_tools()
        if ctx.dry_run:
            logger.info("Dry run: skipping privilege, disk space and loop device checks")
            return
        preflight.check_privileges()
        preflight.check_free_space(str(ctx.build_dir), ctx.cfg.min_free_bytes)
        preflight.check_loop_available()
