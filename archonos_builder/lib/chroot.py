from __future__ import annotations

import logging
from typing import Mapping, Sequence

from .command import CmdResult, run_cmd

logger = logging.getLogger(__name__)


def chroot_cmd(
    target_root: str,
    argv: Sequence[str],
    *,
    env: Mapping[str, str] | None = None,
    check: bool = True,
    dry_run: bool = False,
) -> CmdResult:
    """Run a command inside target root.

    arch-chroot sets up and tears down the /dev, /proc and /sys binds itself.
    """

    return run_cmd(["arch-chroot", target_root, *argv], env=env, check=check, dry_run=dry_run)
