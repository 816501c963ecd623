from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List

from .chroot import chroot_cmd
from .subvolumes import OS_ROLES, Role, Subvolume

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BootEntry:
    filename: str
    title: str
    linux: str
    initrd: str
    options: str

    def render(self) -> str:
        return (
            f"title   {self.title}\n"
            f"linux   /{self.linux}\n"
            f"initrd  /{self.initrd}\n"
            f"options {self.options}\n"
        )


def kernel_cmdline(*, root_uuid: str, subvolume: str, read_only: bool, extra: str = "") -> str:
    parts = [f"root=UUID={root_uuid}", f"rootflags=subvol={subvolume}", "ro" if read_only else "rw"]
    if extra:
        parts.append(extra)
    return " ".join(parts)


def boot_entries(
    subvolumes: Dict[Role, Subvolume],
    *,
    root_uuid: str,
    read_only: bool,
    kernel: str,
    initramfs: str,
    fallback_initramfs: str,
    cmdline: str = "",
    entry_prefix: str = "archonos",
    title: str = "ArchonOS",
) -> List[BootEntry]:
    """One entry per bootable OS subvolume, then a fallback for the active one."""

    entries: List[BootEntry] = []
    for role in OS_ROLES:
        sv = subvolumes.get(role)
        if sv is None:
            continue
        slot = sv.name.lstrip("@")
        entries.append(
            BootEntry(
                filename=f"{entry_prefix}-{slot}.conf",
                title=f"{title} ({slot})",
                linux=kernel,
                initrd=initramfs,
                options=kernel_cmdline(root_uuid=root_uuid, subvolume=sv.name, read_only=read_only, extra=cmdline),
            )
        )

    active = subvolumes[Role.ACTIVE_OS]
    entries.append(
        BootEntry(
            filename=f"{entry_prefix}-fallback.conf",
            title=f"{title} (fallback initramfs)",
            linux=kernel,
            initrd=fallback_initramfs,
            options=kernel_cmdline(root_uuid=root_uuid, subvolume=active.name, read_only=read_only, extra=cmdline),
        )
    )
    return entries


def render_loader_conf(default_entry: str, *, timeout: int = 3) -> str:
    return f"default {default_entry}\ntimeout {timeout}\nconsole-mode max\neditor no\n"


def install_systemd_boot(*, target_root: str, dry_run: bool = False) -> None:
    """Install systemd-boot onto the ESP mounted at /boot in the target."""

    chroot_cmd(target_root, ["bootctl", "install", "--esp-path=/boot"], dry_run=dry_run)
    logger.info("systemd-boot installed")


def write_boot_entries(*, target_root: str, entries: List[BootEntry], dry_run: bool = False) -> List[Path]:
    loader_dir = Path(target_root) / "boot/loader"
    entries_dir = loader_dir / "entries"
    written: List[Path] = []

    conf = loader_dir / "loader.conf"
    contents = render_loader_conf(entries[0].filename)
    if dry_run:
        logger.info("Would write %s", conf)
    else:
        entries_dir.mkdir(parents=True, exist_ok=True)
        conf.write_text(contents, encoding="utf-8")
    written.append(conf)

    for e in entries:
        p = entries_dir / e.filename
        if dry_run:
            logger.info("Would write %s", p)
        else:
            p.write_text(e.render(), encoding="utf-8")
        written.append(p)
        logger.info("Boot entry %s: %s", e.filename, e.options)
    return written
