from __future__ import annotations

import logging

from ..build_context import BuildContext
from ..lib.pkg import install_packages, installed_package_count, verify_files, verify_kernel

logger = logging.getLogger(__name__)


class InstallPackagesStep:
    step_id = "50_install_packages"

    def run(self, ctx: BuildContext) -> None:
        target_root = str(ctx.mount_dir)
        install_packages(
            target_root,
            ctx.cfg.packages,
            installer=ctx.cfg.package_installer,
            dry_run=ctx.dry_run,
        )
        verify_kernel(target_root, ctx.cfg.kernel, dry_run=ctx.dry_run)
        verify_files(target_root, ctx.cfg.verify_files, dry_run=ctx.dry_run)

        count = installed_package_count(target_root, dry_run=ctx.dry_run)
        if count is not None and count < ctx.cfg.min_package_count:
            logger.warning("Package count seems low (%d < %d), continuing", count, ctx.cfg.min_package_count)
