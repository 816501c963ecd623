from __future__ import annotations

import logging
import shutil
from pathlib import Path

from ..build_context import BuildContext
from ..lib.block import get_uuid
from ..lib.chroot import chroot_cmd
from ..lib.fstab import entries_for_plan, render_fstab

logger = logging.getLogger(__name__)


class ConfigureSystemStep:
    step_id = "60_configure_system"

    def run(self, ctx: BuildContext) -> None:
        if ctx.data is None or ctx.efi is None or not ctx.mount_plan:
            raise RuntimeError("Target tree not mounted; run the mount stage first")

        target_root = ctx.mount_dir
        data_uuid = get_uuid(ctx.data.node, dry_run=ctx.dry_run)
        efi_uuid = get_uuid(ctx.efi.node, dry_run=ctx.dry_run)
        logger.info("Root UUID: %s, EFI UUID: %s", data_uuid, efi_uuid)

        fstab = render_fstab(entries_for_plan(ctx.mount_plan, data_uuid=data_uuid, efi_uuid=efi_uuid))
        fstab_path = target_root / "etc/fstab"
        if ctx.dry_run:
            logger.info("Would write %s", fstab_path)
        else:
            fstab_path.parent.mkdir(parents=True, exist_ok=True)
            fstab_path.write_text(fstab, encoding="utf-8")
            logger.info("Wrote %s", fstab_path)

        self._run_config_script(ctx)

    def _run_config_script(self, ctx: BuildContext) -> None:
        script = ctx.cfg.configure_script
        if not script:
            logger.info("No configuration script configured; skipping")
            return

        src = Path(script)
        if not src.is_file():
            raise FileNotFoundError(f"Configuration script not found: {src}")

        in_target = Path("/tmp") / src.name
        dst = ctx.mount_dir / in_target.relative_to("/")
        if not ctx.dry_run:
            dst.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(src, dst)
            dst.chmod(0o755)

        env = ctx.cfg.configure_env
        for k, v in sorted(env.items()):
            logger.info("  - %s=%s", k, v)
        try:
            chroot_cmd(str(ctx.mount_dir), [str(in_target)], env=env, dry_run=ctx.dry_run)
        finally:
            if not ctx.dry_run and dst.exists():
                dst.unlink()
