from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Tuple, Union

from ..errors import LayoutMismatch
from .command import run_cmd
from .loopdev import DEFAULT_WAIT_SECONDS, BlockDevice, PartitionHandle, PartitionKind, resolve_partitions
from .units import MiB, to_mib

logger = logging.getLogger(__name__)

ALIGN_BYTES = MiB
ESP_START_MIB = 1


@dataclass(frozen=True)
class PartitionGeometry:
    number: int
    start: int  # bytes, inclusive
    end: int  # bytes, inclusive
    fs: str
    name: str
    flags: Tuple[str, ...]


def create_layout(
    device: BlockDevice,
    efi_size: Union[str, int],
    *,
    wait_seconds: float = DEFAULT_WAIT_SECONDS,
    dry_run: bool = False,
) -> Tuple[PartitionHandle, PartitionHandle]:
    """Write a fresh GPT table: ESP at 1 MiB, data partition for the rest.

    Any previous layout is destroyed without prompting. Failures are fatal.
    """

    esp_end_mib = ESP_START_MIB + to_mib(efi_size)
    disk = device.path
    logger.info("Creating GPT partition table on %s (ESP %d MiB)", disk, esp_end_mib - ESP_START_MIB)

    run_cmd(["parted", "-s", disk, "mklabel", "gpt"], dry_run=dry_run)
    run_cmd(
        ["parted", "-s", "-a", "optimal", disk, "mkpart", "ESP", "fat32", f"{ESP_START_MIB}MiB", f"{esp_end_mib}MiB"],
        dry_run=dry_run,
    )
    run_cmd(["parted", "-s", disk, "set", "1", "esp", "on"], dry_run=dry_run)
    run_cmd(
        ["parted", "-s", "-a", "optimal", disk, "mkpart", "primary", "btrfs", f"{esp_end_mib}MiB", "100%"],
        dry_run=dry_run,
    )

    # Inform kernel
    run_cmd(["partprobe", disk], dry_run=dry_run)

    handles = resolve_partitions(device, 2, wait_seconds=wait_seconds, dry_run=dry_run)
    efi = next(h for h in handles if h.kind is PartitionKind.ESP)
    data = next(h for h in handles if h.kind is PartitionKind.DATA)
    return efi, data


def _parse_bytes(field: str) -> int:
    return int(field.rstrip("B"))


def read_layout(device: BlockDevice, *, dry_run: bool = False) -> List[PartitionGeometry]:
    """Read the partition table back in bytes (``parted -m``)."""

    r = run_cmd(["parted", "-m", "-s", device.path, "unit", "B", "print"], dry_run=dry_run)
    parts: List[PartitionGeometry] = []
    for line in (r.stdout or "").splitlines():
        line = line.strip().rstrip(";")
        fields = line.split(":")
        if len(fields) < 7 or not fields[0].isdigit():
            continue
        flags = tuple(f.strip() for f in fields[6].split(",") if f.strip())
        parts.append(
            PartitionGeometry(
                number=int(fields[0]),
                start=_parse_bytes(fields[1]),
                end=_parse_bytes(fields[2]),
                fs=fields[4],
                name=fields[5],
                flags=flags,
            )
        )
    return sorted(parts, key=lambda p: p.number)


def layout_problems(parts: List[PartitionGeometry], device_size: int, efi_size: Union[str, int]) -> List[str]:
    """Return every way ``parts`` differs from the ESP + data layout."""

    problems: List[str] = []
    if len(parts) != 2:
        return [f"expected 2 partitions, found {len(parts)}"]

    esp, data = parts
    if esp.start % ALIGN_BYTES:
        problems.append(f"partition 1 starts at {esp.start}, not 1 MiB aligned")
    if "esp" not in esp.flags:
        problems.append("partition 1 is not flagged esp")
    if esp.end - esp.start + 1 != to_mib(efi_size) * MiB:
        problems.append(f"partition 1 is {esp.end - esp.start + 1} bytes, expected {to_mib(efi_size) * MiB}")
    if data.start != esp.end + 1:
        problems.append(f"partition 2 starts at {data.start}, partition 1 ends at {esp.end}")
    # the backup GPT occupies the tail of the device
    if device_size and device_size - (data.end + 1) >= ALIGN_BYTES:
        problems.append(f"partition 2 ends at {data.end}, device is {device_size} bytes")
    return problems


def verify_layout(device: BlockDevice, efi_size: Union[str, int], *, dry_run: bool = False) -> List[PartitionGeometry]:
    parts = read_layout(device, dry_run=dry_run)
    if dry_run:
        return parts
    problems = layout_problems(parts, device.size_bytes, efi_size)
    if problems:
        raise LayoutMismatch(f"Partition layout on {device.path} is wrong: " + "; ".join(problems))
    for p in parts:
        logger.info("Partition %d: %d-%d %s %s %s", p.number, p.start, p.end, p.fs, p.name, ",".join(p.flags))
    return parts
