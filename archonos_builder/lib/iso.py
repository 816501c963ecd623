from __future__ import annotations

import hashlib
import logging
import os
from pathlib import Path
from typing import Iterable, List, Sequence

from .command import run_cmd

logger = logging.getLogger(__name__)

CHUNK = 4 * 1024 * 1024


def stage_image(image_path: Path, iso_dir: Path, *, subdir: str = "archonos", dry_run: bool = False) -> Path:
    """Place the disk image where the installer on the ISO expects it.

    A hard link is used when the ISO tree shares a filesystem with the image;
    otherwise the copy keeps the image sparse.
    """

    dst = iso_dir / subdir / image_path.name
    if dry_run:
        logger.info("Would stage %s -> %s", image_path, dst)
        return dst
    dst.parent.mkdir(parents=True, exist_ok=True)
    if dst.exists():
        dst.unlink()
    try:
        os.link(image_path, dst)
        logger.info("Linked %s -> %s", image_path, dst)
    except OSError as e:
        logger.info("Cannot link %s (%s); making a sparse copy", image_path, e)
        run_cmd(["cp", "--sparse=always", str(image_path), str(dst)])
    return dst


def remove_staged(staged: Path, *, dry_run: bool = False) -> None:
    if dry_run:
        logger.info("Would remove staged image %s", staged)
        return
    if staged.exists():
        staged.unlink()
        logger.info("Removed staged image %s", staged)
    if staged.parent.is_dir() and not any(staged.parent.iterdir()):
        staged.parent.rmdir()


def build_iso(
    *,
    iso_dir: Path,
    iso_path: Path,
    volume_id: str,
    extra_args: Sequence[str] = (),
    dry_run: bool = False,
) -> Path:
    run_cmd(
        [
            "xorriso",
            "-as",
            "mkisofs",
            "-iso-level",
            "3",
            "-full-iso9660-filenames",
            "-volid",
            volume_id,
            *extra_args,
            "-output",
            str(iso_path),
            str(iso_dir),
        ],
        dry_run=dry_run,
    )
    return iso_path


def sha256_file(path: Path) -> str:
    h = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(CHUNK), b""):
            h.update(chunk)
    return h.hexdigest()


def write_checksums(paths: Iterable[Path], out_path: Path, *, dry_run: bool = False) -> List[str]:
    """Write a sha256sum-compatible manifest; returns its lines."""

    if dry_run:
        logger.info("Would write checksums to %s", out_path)
        return []
    lines = [f"{sha256_file(p)}  {p.name}" for p in paths if p.is_file()]
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    logger.info("Wrote checksums: %s", out_path)
    return lines
