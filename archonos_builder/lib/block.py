from __future__ import annotations

import logging
import os
import stat

from ..errors import DeviceNotFound
from .command import run_cmd

logger = logging.getLogger(__name__)


def is_block_device(path: str) -> bool:
    try:
        return stat.S_ISBLK(os.stat(path).st_mode)
    except OSError:
        return False


def require_block_device(path: str, *, dry_run: bool = False) -> None:
    """Raise DeviceNotFound unless ``path`` is a block-special node."""

    if dry_run:
        return
    if not is_block_device(path):
        raise DeviceNotFound(f"Block device not found: {path}")


def get_uuid(dev: str, *, dry_run: bool = False) -> str:
    """Return filesystem UUID for a block device."""

    r = run_cmd(["blkid", "-s", "UUID", "-o", "value", dev], dry_run=dry_run)
    uuid = (r.stdout or "").strip()
    if not uuid and not dry_run:
        raise DeviceNotFound(f"Unable to determine UUID for {dev}")
    return uuid or "DRY-RUN-UUID"


def is_mountpoint(path: str, *, dry_run: bool = False) -> bool:
    # Nothing is mounted for real in a dry run; report what the plan recorded.
    if dry_run:
        return True
    r = run_cmd(["mountpoint", "-q", path], check=False)
    return r.returncode == 0


def device_size_bytes(dev: str, *, dry_run: bool = False) -> int:
    r = run_cmd(["blockdev", "--getsize64", dev], dry_run=dry_run)
    out = (r.stdout or "").strip()
    return int(out) if out.isdigit() else 0
