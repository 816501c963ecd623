from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Sequence

from .chroot import chroot_cmd
from .command import run_cmd

logger = logging.getLogger(__name__)


def install_packages(
    target_root: str,
    packages: Sequence[str],
    *,
    installer: str = "pacstrap",
    dry_run: bool = False,
) -> None:
    """Hand the package set to the external installer; its exit status decides."""

    if not packages:
        raise ValueError("package list is empty")
    logger.info("Installing %d packages into %s with %s", len(packages), target_root, installer)
    for pkg in packages:
        logger.debug("  - %s", pkg)
    run_cmd([installer, target_root, *packages], dry_run=dry_run)


def verify_kernel(target_root: str, kernel: str, *, dry_run: bool = False) -> None:
    p = Path(target_root) / "boot" / kernel
    if dry_run:
        logger.info("Would check for kernel %s", p)
        return
    if not p.exists():
        raise RuntimeError(f"Kernel image missing after package install: {p}")
    logger.info("Linux kernel installed: %s", p)


def verify_files(target_root: str, files: Sequence[str], *, dry_run: bool = False) -> None:
    """Require each path (relative to the target root) to exist after install."""

    root = Path(target_root)
    if dry_run:
        logger.info("Would check %d installed files under %s", len(files), root)
        return
    missing = []
    for rel in files:
        p = root / rel.lstrip("/")
        if p.is_file():
            logger.info("Installed: %s", rel)
        else:
            logger.error("Missing: %s", rel)
            missing.append(rel)
    if missing:
        raise RuntimeError(f"Files missing after package install: {', '.join(missing)}")


def installed_package_count(target_root: str, *, dry_run: bool = False) -> Optional[int]:
    """Number of packages pacman reports in the target; None when it cannot tell."""

    r = chroot_cmd(target_root, ["pacman", "-Q"], check=False, dry_run=dry_run)
    if dry_run:
        return None
    if r.returncode != 0:
        logger.warning("Could not list installed packages: %s", (r.stderr or "").strip())
        return None
    count = len([line for line in r.stdout.splitlines() if line.strip()])
    logger.info("Total packages installed: %d", count)
    return count
