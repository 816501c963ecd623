from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import List

from .build_context import BuildContext
from .errors import TeardownWarning
from .lib import loopdev
from .lib.block import is_mountpoint
from .lib.command import run_cmd
from .lib.mounts import unmount_entry

logger = logging.getLogger(__name__)


def release(ctx: BuildContext) -> List[TeardownWarning]:
    """Unmount what ``ctx`` recorded as mounted, in reverse, then detach the loop device.

    Safe to call more than once: entries are dropped from ``ctx.mounted`` as
    they are handled and the device handle refuses a second detach.
    """

    warnings: List[TeardownWarning] = []

    while ctx.mounted:
        entry = ctx.mounted.pop()
        w = unmount_entry(entry, dry_run=ctx.dry_run)
        if w is not None:
            warnings.append(w)

    # A scratch mount only survives here when its own cleanup was interrupted.
    for d in ctx.scratch_dirs:
        if d.exists() and is_mountpoint(str(d), dry_run=False):
            r = run_cmd(["umount", str(d)], check=False, dry_run=ctx.dry_run)
            if r.returncode != 0:
                detail = (r.stderr or "").strip() or f"exit {r.returncode}"
                logger.warning("Failed to unmount scratch mount %s: %s", d, detail)
                warnings.append(TeardownWarning("umount", str(d), detail))

    if ctx.device is not None and ctx.device.attached:
        warnings.extend(loopdev.detach(ctx.device, dry_run=ctx.dry_run))

    ctx.teardown_warnings.extend(warnings)
    return warnings


def _mounts_under(root: Path) -> List[Path]:
    """Directories under ``root`` (inclusive) that are mount points; never descends into one."""

    found: List[Path] = []
    for dirpath, dirnames, _files in os.walk(root):
        here = Path(dirpath)
        if is_mountpoint(str(here)):
            found.append(here)
            dirnames[:] = []
    return found


def unwind(ctx: BuildContext) -> List[TeardownWarning]:
    """Final cleanup for a build, run exactly once on every exit path.

    Never raises for missing or already-released resources; each problem is
    logged as a warning and the remaining steps still run.
    """

    if ctx.unwound:
        logger.warning("Teardown already ran; ignoring repeated request")
        return []
    ctx.unwound = True

    logger.info("Cleaning up (mounted=%d, device=%s)", ctx.mounted_count, ctx.device.path if ctx.device else None)
    warnings = release(ctx)

    if ctx.dry_run:
        logger.info("Would remove %s", ctx.work_dir)
    elif ctx.work_dir.exists():
        removal: List[TeardownWarning] = []
        still_mounted = _mounts_under(ctx.work_dir)
        for d in still_mounted:
            logger.warning("Not removing %s: %s is still mounted", ctx.work_dir, d)
            removal.append(TeardownWarning("rmtree", str(ctx.work_dir), f"{d} is still mounted"))
        if not still_mounted:
            try:
                shutil.rmtree(ctx.work_dir)
            except OSError as e:
                logger.warning("Failed to remove work directory %s: %s", ctx.work_dir, e)
                removal.append(TeardownWarning("rmtree", str(ctx.work_dir), str(e)))
        warnings.extend(removal)
        ctx.teardown_warnings.extend(removal)

    logger.info("Teardown completed (%d warnings)", len(warnings))
    return warnings
