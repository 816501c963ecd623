from __future__ import annotations

import logging

from ..build_context import BuildContext
from ..lib.block import get_uuid
from ..lib.bootloader import boot_entries, install_systemd_boot, write_boot_entries

logger = logging.getLogger(__name__)


class InstallBootloaderStep:
    step_id = "70_install_bootloader"

    def run(self, ctx: BuildContext) -> None:
        if ctx.data is None or not ctx.subvolumes:
            raise RuntimeError("Subvolume layout missing; run the subvolume stage first")

        target_root = str(ctx.mount_dir)
        root_uuid = get_uuid(ctx.data.node, dry_run=ctx.dry_run)

        install_systemd_boot(target_root=target_root, dry_run=ctx.dry_run)
        entries = boot_entries(
            ctx.subvolumes,
            root_uuid=root_uuid,
            read_only=ctx.cfg.layout.read_only_root,
            kernel=ctx.cfg.kernel,
            initramfs=ctx.cfg.initramfs,
            fallback_initramfs=ctx.cfg.fallback_initramfs,
            cmdline=ctx.cfg.kernel_cmdline,
            entry_prefix=ctx.cfg.image_name,
        )
        write_boot_entries(target_root=target_root, entries=entries, dry_run=ctx.dry_run)
        logger.info("Bootloader configured (%d entries)", len(entries))
