from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from ..errors import DeviceNotFound, ExternalToolFailure, ResourceUnavailable, TeardownWarning
from .block import device_size_bytes, is_block_device
from .command import run_cmd

logger = logging.getLogger(__name__)

DEFAULT_WAIT_SECONDS = 5.0
POLL_INTERVAL = 0.25


class PartitionKind(str, Enum):
    ESP = "esp"
    DATA = "data"


class NamingScheme(str, Enum):
    KERNEL = "kernel"  # /dev/loop0p1
    MAPPER = "mapper"  # /dev/mapper/loop0p1 (kpartx)


@dataclass
class PartitionHandle:
    index: int
    kind: PartitionKind
    node: str


@dataclass
class BlockDevice:
    path: str
    backing_file: str
    size_bytes: int = 0
    partitions: List[PartitionHandle] = field(default_factory=list)
    naming: Optional[NamingScheme] = None
    attached: bool = True

    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1]


def _kind_for_index(index: int) -> PartitionKind:
    return PartitionKind.ESP if index == 1 else PartitionKind.DATA


def part_suffix(disk: str, n: int) -> str:
    # loop/nvme/mmcblk devices use p suffix
    if disk.endswith(tuple("0123456789")):
        return f"{disk}p{n}"
    return f"{disk}{n}"


def find_free(*, dry_run: bool = False) -> str:
    """Return the next free loop device node or raise ResourceUnavailable."""

    r = run_cmd(["losetup", "--find"], check=False, dry_run=dry_run)
    dev = (r.stdout or "").strip()
    if dry_run:
        return dev or "/dev/loop0"
    if r.returncode != 0 or not dev:
        raise ResourceUnavailable(f"No free loop device available: {(r.stderr or '').strip()}")
    return dev


def attach(image_path: str, *, dry_run: bool = False) -> BlockDevice:
    """Attach ``image_path`` to a free loop device with partition scanning."""

    r = run_cmd(["losetup", "--find", "--show", "--partscan", image_path], check=False, dry_run=dry_run)
    if r.returncode != 0:
        err = (r.stderr or "").lower()
        if "free" in err:
            raise ResourceUnavailable(f"No free loop device for {image_path}: {r.stderr.strip()}")
        raise ExternalToolFailure(r.argv, r.returncode, r.stdout, r.stderr)

    path = (r.stdout or "").strip() or ("/dev/loop0" if dry_run else "")
    if not path:
        raise ResourceUnavailable(f"losetup did not report a loop device for {image_path}")

    dev = BlockDevice(path=path, backing_file=image_path)
    dev.size_bytes = device_size_bytes(path, dry_run=dry_run)
    logger.info("Loop device attached: %s -> %s (%d bytes)", image_path, path, dev.size_bytes)
    return dev


def _wait_for_nodes(nodes: List[str], *, timeout: float, interval: float = POLL_INTERVAL) -> bool:
    deadline = time.monotonic() + timeout
    while True:
        if all(is_block_device(n) for n in nodes):
            return True
        if time.monotonic() >= deadline:
            return False
        time.sleep(interval)


def _map_with_kpartx(device: BlockDevice, *, dry_run: bool = False) -> List[str]:
    """Create device-mapper nodes for the partitions and return their paths."""

    r = run_cmd(["kpartx", "-av", device.path], dry_run=dry_run)
    nodes = []
    for line in (r.stdout or "").splitlines():
        # add map loop0p1 (253:7): 0 1048576 linear 7:0 2048
        parts = line.split()
        if len(parts) >= 3 and parts[0] == "add" and parts[1] == "map":
            nodes.append(f"/dev/mapper/{parts[2]}")
    return nodes


def resolve_partitions(
    device: BlockDevice,
    count: int,
    *,
    wait_seconds: float = DEFAULT_WAIT_SECONDS,
    dry_run: bool = False,
) -> List[PartitionHandle]:
    """Resolve partition nodes 1..count of ``device``.

    The kernel's own sub-device nodes are preferred. When they do not show up
    within ``wait_seconds`` the partitions are mapped with kpartx and the
    device-mapper nodes are used instead. Whichever scheme wins is recorded on
    the device; a device that was already resolved keeps its scheme.
    """

    run_cmd(["partprobe", device.path], check=False, dry_run=dry_run)
    run_cmd(["udevadm", "settle"], check=False, dry_run=dry_run)

    natural = [part_suffix(device.path, n) for n in range(1, count + 1)]
    mapped = [f"/dev/mapper/{device.name}p{n}" for n in range(1, count + 1)]

    if dry_run:
        nodes, scheme = natural, NamingScheme.KERNEL
    elif device.naming is NamingScheme.MAPPER:
        nodes, scheme = mapped, NamingScheme.MAPPER
        if not _wait_for_nodes(nodes, timeout=wait_seconds):
            raise DeviceNotFound(f"Mapped partition nodes missing for {device.path}: {nodes}")
    elif _wait_for_nodes(natural, timeout=wait_seconds):
        nodes, scheme = natural, NamingScheme.KERNEL
    elif device.naming is NamingScheme.KERNEL:
        raise DeviceNotFound(f"Partition nodes disappeared for {device.path}: {natural}")
    else:
        logger.warning("Partition nodes %s did not appear; falling back to kpartx", natural)
        reported = _map_with_kpartx(device, dry_run=dry_run)
        nodes = reported[:count] if len(reported) >= count else mapped
        scheme = NamingScheme.MAPPER
        # naming is recorded before the wait so detach() removes the mappings
        device.naming = scheme
        if not _wait_for_nodes(nodes, timeout=wait_seconds):
            raise DeviceNotFound(f"Partition nodes not found for {device.path} (tried {natural} and {nodes})")

    device.naming = scheme
    handles = [PartitionHandle(index=i, kind=_kind_for_index(i), node=node) for i, node in enumerate(nodes, start=1)]
    device.partitions = handles
    for h in handles:
        logger.info("Partition %d (%s): %s", h.index, h.kind.value, h.node)
    return handles


def detach(device: Optional[BlockDevice], *, dry_run: bool = False) -> List[TeardownWarning]:
    """Release the loop allocation behind ``device``.

    Never raises; every problem is logged and returned as a TeardownWarning.
    A handle that is missing or already released yields a warning only.
    """

    if device is None:
        logger.warning("Loop detach requested without an attached device")
        return [TeardownWarning("detach", "<none>", "no loop device attached")]
    if not device.attached:
        logger.warning("Loop device %s already detached", device.path)
        return [TeardownWarning("detach", device.path, "already detached")]

    # marked first so a failing detach is never retried
    device.attached = False
    warnings: List[TeardownWarning] = []

    if device.naming is NamingScheme.MAPPER:
        r = run_cmd(["kpartx", "-d", device.path], check=False, dry_run=dry_run)
        if r.returncode != 0:
            detail = (r.stderr or "").strip() or f"exit {r.returncode}"
            logger.warning("Failed to remove partition mappings for %s: %s", device.path, detail)
            warnings.append(TeardownWarning("unmap", device.path, detail))

    r = run_cmd(["losetup", "--detach", device.path], check=False, dry_run=dry_run)
    if r.returncode != 0:
        detail = (r.stderr or "").strip() or f"exit {r.returncode}"
        logger.warning("Failed to detach loop device %s: %s", device.path, detail)
        warnings.append(TeardownWarning("detach", device.path, detail))
    else:
        logger.info("Loop device detached: %s", device.path)
    return warnings
