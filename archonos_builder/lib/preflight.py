from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import Iterable, List

from ..errors import ResourceUnavailable
from .loopdev import find_free

logger = logging.getLogger(__name__)

REQUIRED_TOOLS = (
    "pacstrap",
    "arch-chroot",
    "mkfs.btrfs",
    "mkfs.fat",
    "btrfs",
    "parted",
    "partprobe",
    "losetup",
    "kpartx",
    "mount",
    "umount",
    "mountpoint",
    "findmnt",
    "blkid",
    "blockdev",
    "truncate",
    "xorriso",
)


def missing_tools(tools: Iterable[str]) -> List[str]:
    return [t for t in tools if shutil.which(t) is None]


def check_tools(tools: Iterable[str] = REQUIRED_TOOLS) -> None:
    missing = missing_tools(tools)
    if missing:
        raise ResourceUnavailable(f"Missing required tools: {' '.join(missing)}")
    logger.info("All dependencies satisfied")


def check_privileges() -> None:
    if os.geteuid() != 0:
        raise ResourceUnavailable("This build must run as root")
    logger.info("Running with sufficient privileges")


def _existing_parent(path: Path) -> Path:
    p = path
    while not p.exists() and p != p.parent:
        p = p.parent
    return p


def check_free_space(build_dir: str, required_bytes: int) -> int:
    where = _existing_parent(Path(build_dir).resolve())
    free = shutil.disk_usage(where).free
    if free < required_bytes:
        raise ResourceUnavailable(
            f"Insufficient disk space at {where}: need {required_bytes // 1024**3} GiB, have {free // 1024**3} GiB"
        )
    logger.info("Free space at %s: %d bytes", where, free)
    return free


def check_loop_available() -> str:
    dev = find_free()
    logger.info("Free loop device available: %s", dev)
    return dev
