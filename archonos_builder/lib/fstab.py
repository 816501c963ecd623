from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List

from .mounts import MountEntry

HEADER = (
    "# ArchonOS fstab - generated at build time, devices are identified by UUID\n"
    "# <file system>  <dir>  <type>  <options>  <dump>  <pass>\n"
)

TMPFS_ENTRIES = (
    ("/tmp", "defaults,noatime,mode=1777"),
    ("/var/tmp", "defaults,noatime,mode=1777"),
)


@dataclass(frozen=True)
class FstabEntry:
    spec: str
    mountpoint: str
    fstype: str
    options: str
    dump: int = 0
    passno: int = 0

    def render(self) -> str:
        return f"{self.spec}\t{self.mountpoint}\t{self.fstype}\t{self.options}\t{self.dump}\t{self.passno}"


def entries_for_plan(plan: Iterable[MountEntry], *, data_uuid: str, efi_uuid: str) -> List[FstabEntry]:
    """Translate the mount plan into UUID-keyed fstab entries."""

    entries: List[FstabEntry] = []
    for m in plan:
        uuid = efi_uuid if m.fstype == "vfat" else data_uuid
        entries.append(
            FstabEntry(
                spec=f"UUID={uuid}",
                mountpoint=m.mountpoint,
                fstype=m.fstype,
                options=",".join(m.options),
                passno=1 if m.mountpoint == "/" else 2,
            )
        )
    for mp, opts in TMPFS_ENTRIES:
        entries.append(FstabEntry(spec="tmpfs", mountpoint=mp, fstype="tmpfs", options=opts))
    return entries


def render_fstab(entries: Iterable[FstabEntry]) -> str:
    return HEADER + "\n".join(e.render() for e in entries) + "\n"
