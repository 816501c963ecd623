from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from ..errors import TeardownWarning
from .block import is_mountpoint, require_block_device
from .command import run_cmd
from .loopdev import PartitionHandle
from .subvolumes import ROLE_MOUNTPOINTS, Layout, Role, Subvolume, default_role, ordered_roles

logger = logging.getLogger(__name__)

DEFAULT_BTRFS_OPTIONS = "noatime,compress=zstd:1,space_cache=v2"


@dataclass(frozen=True)
class MountEntry:
    """One (source, target, options) step of the target tree."""

    source: str
    target: str
    options: Tuple[str, ...]
    mountpoint: str  # path inside the installed system
    fstype: str = "btrfs"
    role: Optional[Role] = None
    subvolume: Optional[str] = None

    @property
    def install_options(self) -> Tuple[str, ...]:
        # The tree is populated through a writable mount; a read-only policy
        # applies to the installed system through the persisted mount table.
        return tuple("rw" if o == "ro" else o for o in self.options)


MountPlan = List[MountEntry]


def _btrfs_options(mode: str, base: str, subvol: str) -> Tuple[str, ...]:
    return (mode, *[o for o in base.split(",") if o], f"subvol={subvol}")


def build_mount_plan(
    layout: Layout,
    subvolumes: Dict[Role, Subvolume],
    *,
    data: PartitionHandle,
    efi: PartitionHandle,
    target_root: str,
    base_options: str = DEFAULT_BTRFS_OPTIONS,
) -> MountPlan:
    """Order the target tree: root first, then the ESP, then persistent data.

    Every later target lives inside the root mount, so mounting in list order
    and unmounting in reverse never touches a directory on the wrong side of a
    mount.
    """

    root = Path(target_root)
    os_role = default_role(subvolumes)
    root_sv = subvolumes[os_role]

    plan: MountPlan = [
        MountEntry(
            source=data.node,
            target=str(root),
            options=_btrfs_options("ro" if layout.read_only_root else "rw", base_options, root_sv.name),
            mountpoint="/",
            role=os_role,
            subvolume=root_sv.name,
        ),
        MountEntry(
            source=efi.node,
            target=str(root / "boot"),
            options=("rw", "relatime", "fmask=0022", "dmask=0022", "codepage=437", "iocharset=ascii", "shortname=mixed", "utf8", "errors=remount-ro"),
            mountpoint="/boot",
            fstype="vfat",
        ),
    ]

    for role in ordered_roles(subvolumes):
        mp = ROLE_MOUNTPOINTS.get(role)
        if mp is None:
            continue
        sv = subvolumes[role]
        plan.append(
            MountEntry(
                source=data.node,
                target=str(root / mp.lstrip("/")),
                options=_btrfs_options("rw", base_options, sv.name),
                mountpoint=mp,
                role=role,
                subvolume=sv.name,
            )
        )
    return plan


def execute_mount_plan(plan: MountPlan, mounted: List[MountEntry], *, dry_run: bool = False) -> None:
    """Mount ``plan`` in order, appending each success to ``mounted``.

    ``mounted`` is the caller's record of the completed prefix; it is updated
    before the next entry is attempted so a failure part-way leaves an exact
    account of what teardown has to undo.
    """

    for entry in plan:
        require_block_device(entry.source, dry_run=dry_run)
        if not dry_run:
            Path(entry.target).mkdir(parents=True, exist_ok=True)
        argv = ["mount", "-o", ",".join(entry.install_options)]
        if entry.fstype == "vfat":
            argv += ["-t", "vfat"]
        run_cmd([*argv, entry.source, entry.target], dry_run=dry_run)
        mounted.append(entry)
        logger.info("Mounted %s -> %s (%s)", entry.subvolume or entry.source, entry.target, ",".join(entry.install_options))

    if plan and not dry_run:
        run_cmd(["findmnt", "-R", plan[0].target], check=False)


def unmount_entry(entry: MountEntry, *, dry_run: bool = False) -> Optional[TeardownWarning]:
    """Unmount one plan entry; an absent mount is a warning, not an error."""

    if not is_mountpoint(entry.target, dry_run=dry_run):
        logger.warning("Not mounted, skipping: %s", entry.target)
        return TeardownWarning("umount", entry.target, "not mounted")

    r = run_cmd(["umount", entry.target], check=False, dry_run=dry_run)
    if r.returncode != 0:
        detail = (r.stderr or "").strip() or f"exit {r.returncode}"
        logger.warning("Failed to unmount %s: %s", entry.target, detail)
        return TeardownWarning("umount", entry.target, detail)
    logger.info("Unmounted %s", entry.target)
    return None
