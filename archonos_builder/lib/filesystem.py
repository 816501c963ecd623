from __future__ import annotations

import logging

from .block import require_block_device
from .command import run_cmd
from .loopdev import PartitionHandle

logger = logging.getLogger(__name__)

FAT_LABEL_MAX = 11


def validate_fat_label(label: str) -> str:
    if not label or len(label) > FAT_LABEL_MAX:
        raise ValueError(f"FAT volume label must be 1-{FAT_LABEL_MAX} characters: {label!r}")
    return label.upper()


def format_efi(part: PartitionHandle, label: str, *, dry_run: bool = False) -> None:
    """Create a FAT32 filesystem on the ESP."""

    label = validate_fat_label(label)
    require_block_device(part.node, dry_run=dry_run)
    logger.info("Creating FAT32 filesystem on %s (label=%s)", part.node, label)
    run_cmd(["mkfs.fat", "-F", "32", "-n", label, part.node], dry_run=dry_run)


def format_data(part: PartitionHandle, label: str, *, dry_run: bool = False) -> None:
    """Create a btrfs filesystem on the data partition, overwriting any signature."""

    require_block_device(part.node, dry_run=dry_run)
    logger.info("Creating Btrfs filesystem on %s (label=%s)", part.node, label)
    run_cmd(["mkfs.btrfs", "-f", "-L", label, part.node], dry_run=dry_run)
