from __future__ import annotations

import logging

from ..build_context import BuildContext, IsoArtifact
from ..lib.command import run_cmd
from ..lib.iso import build_iso, remove_staged, stage_image, write_checksums
from ..teardown import release

logger = logging.getLogger(__name__)


class PackageIsoStep:
    step_id = "80_package_iso"

    def run(self, ctx: BuildContext) -> None:
        # The image must be quiescent before it is copied: unmount the tree
        # and detach the loop device first.
        run_cmd(["sync"], check=False, dry_run=ctx.dry_run)
        release(ctx)

        staged = stage_image(ctx.image_path, ctx.iso_dir, subdir=ctx.cfg.image_name, dry_run=ctx.dry_run)
        logger.info("Staged disk image at %s", staged)

        try:
            iso_path = build_iso(
                iso_dir=ctx.iso_dir,
                iso_path=ctx.iso_path,
                volume_id=ctx.cfg.iso_volume_id,
                extra_args=ctx.cfg.iso_extra_args,
                dry_run=ctx.dry_run,
            )
        finally:
            remove_staged(staged, dry_run=ctx.dry_run)
        lines = write_checksums([iso_path, ctx.image_path], ctx.checksum_path, dry_run=ctx.dry_run)

        ctx.artifact = IsoArtifact(
            iso_path=iso_path,
            image_path=ctx.image_path,
            checksum_path=ctx.checksum_path,
            sha256=lines[0].split()[0] if lines else "",
        )
        logger.info("ISO file: %s", iso_path)
