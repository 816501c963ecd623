from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from ..errors import LayoutIncomplete
from .block import require_block_device
from .command import run_cmd
from .loopdev import PartitionHandle

logger = logging.getLogger(__name__)


class Role(str, Enum):
    ACTIVE_OS = "active-os"
    STANDBY_OS = "standby-os"
    HOME = "home"
    LOG = "log"
    SWAP = "swap"
    CONTAINER_ROOT = "container-root"


# Persisted names; the update tooling on the installed system depends on them.
SUBVOLUME_NAMES: Dict[Role, str] = {
    Role.ACTIVE_OS: "@os_a",
    Role.STANDBY_OS: "@os_b",
    Role.HOME: "@home",
    Role.LOG: "@log",
    Role.SWAP: "@swap",
    Role.CONTAINER_ROOT: "@",
}

# Where each persistent-data role lives inside the installed tree.
ROLE_MOUNTPOINTS: Dict[Role, str] = {
    Role.HOME: "/home",
    Role.LOG: "/var/log",
    Role.SWAP: "/swap",
}

ROLE_ORDER: Tuple[Role, ...] = (
    Role.ACTIVE_OS,
    Role.STANDBY_OS,
    Role.HOME,
    Role.LOG,
    Role.SWAP,
    Role.CONTAINER_ROOT,
)

OS_ROLES: Tuple[Role, ...] = (Role.ACTIVE_OS, Role.STANDBY_OS)


class Layout(str, Enum):
    SINGLE_ROOT = "single-root"
    AB_ATOMIC = "ab-atomic"

    @property
    def roles(self) -> FrozenSet[Role]:
        base = {Role.ACTIVE_OS, Role.HOME, Role.LOG, Role.SWAP}
        if self is Layout.AB_ATOMIC:
            base.add(Role.STANDBY_OS)
        return frozenset(base)

    @property
    def read_only_root(self) -> bool:
        return self is Layout.AB_ATOMIC


@dataclass
class Subvolume:
    name: str
    role: Role
    id: Optional[int] = None
    is_default: bool = False


@dataclass(frozen=True)
class ListedSubvolume:
    id: int
    path: str


def ordered_roles(roles: Iterable[Role]) -> List[Role]:
    wanted = set(roles)
    return [r for r in ROLE_ORDER if r in wanted]


def default_role(roles: Iterable[Role]) -> Role:
    """The OS role a plain mount (no subvol= option) must land in."""

    for role in OS_ROLES:
        if role in set(roles):
            return role
    raise ValueError("role set has no OS role to boot from")


def parse_subvolume_list(text: str) -> List[ListedSubvolume]:
    """Parse ``btrfs subvolume list`` output.

    Lines look like ``ID 256 gen 7 top level 5 path @os_a``; the path is
    everything after the ``path`` keyword and may itself contain spaces.
    """

    out: List[ListedSubvolume] = []
    for line in text.splitlines():
        if " path " not in line:
            continue
        head, path = line.split(" path ", 1)
        fields = head.split()
        if len(fields) < 2 or fields[0] != "ID" or not fields[1].isdigit():
            continue
        out.append(ListedSubvolume(id=int(fields[1]), path=path.strip()))
    return out


def parse_default_id(text: str) -> Optional[int]:
    # ID 256 gen 9 top level 5 path @os_a  |  ID 5 (FS_TREE)
    fields = text.split()
    if len(fields) >= 2 and fields[0] == "ID" and fields[1].isdigit():
        return int(fields[1])
    return None


def find_exact(listing: Iterable[ListedSubvolume], name: str) -> Optional[ListedSubvolume]:
    """Match on exact path equality; a name that prefixes another never matches it."""

    matches = [s for s in listing if s.path == name]
    if len(matches) > 1:
        raise LayoutIncomplete(f"subvolume path {name!r} listed {len(matches)} times")
    return matches[0] if matches else None


def list_subvolumes(mountpoint: str, *, dry_run: bool = False) -> List[ListedSubvolume]:
    r = run_cmd(["btrfs", "subvolume", "list", mountpoint], dry_run=dry_run)
    return parse_subvolume_list(r.stdout or "")


def create_subvolumes(
    data: PartitionHandle,
    roles: Iterable[Role],
    scratch_dir: str,
    *,
    dry_run: bool = False,
) -> Dict[Role, Subvolume]:
    """Create the reserved subvolume set and select the default boot subvolume.

    The raw filesystem is mounted at ``scratch_dir`` (never the target tree)
    and unmounted again before returning, whether or not creation succeeded.
    """

    wanted = ordered_roles(roles)
    boot_role = default_role(wanted)
    require_block_device(data.node, dry_run=dry_run)

    scratch = Path(scratch_dir)
    if not dry_run:
        scratch.mkdir(parents=True, exist_ok=True)

    logger.info("Mounting Btrfs root filesystem at %s", scratch)
    run_cmd(["mount", data.node, str(scratch)], dry_run=dry_run)
    try:
        subvols: Dict[Role, Subvolume] = {}
        for role in wanted:
            name = SUBVOLUME_NAMES[role]
            run_cmd(["btrfs", "subvolume", "create", str(scratch / name)], dry_run=dry_run)
            subvols[role] = Subvolume(name=name, role=role)

        listing = list_subvolumes(str(scratch), dry_run=dry_run)
        if not dry_run:
            missing = []
            for role, sv in subvols.items():
                found = find_exact(listing, sv.name)
                if found is None:
                    missing.append(sv.name)
                else:
                    sv.id = found.id
            if missing:
                raise LayoutIncomplete(f"Subvolumes missing after creation: {', '.join(missing)}")

        default = subvols[boot_role]
        run_cmd(
            ["btrfs", "subvolume", "set-default", str(default.id if default.id is not None else default.name), str(scratch)],
            dry_run=dry_run,
        )

        r = run_cmd(["btrfs", "subvolume", "get-default", str(scratch)], dry_run=dry_run)
        if not dry_run:
            current = parse_default_id(r.stdout or "")
            if current != default.id:
                raise LayoutIncomplete(f"Default subvolume is {current}, expected {default.id} ({default.name})")
        default.is_default = True

        logger.info(
            "Subvolume structure: %s (default=%s)",
            ", ".join(f"{sv.name}[{sv.id}]" for sv in subvols.values()),
            default.name,
        )
        return subvols
    finally:
        r = run_cmd(["umount", str(scratch)], check=False, dry_run=dry_run)
        if r.returncode != 0:
            logger.warning("Failed to unmount scratch mount %s: %s", scratch, (r.stderr or "").strip())
        if not dry_run:
            try:
                os.rmdir(scratch)
            except OSError as e:
                logger.warning("Could not remove scratch mount %s: %s", scratch, e)
