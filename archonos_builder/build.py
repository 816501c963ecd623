from __future__ import annotations

import argparse
import contextlib
import logging
import signal
import threading
from typing import Iterator, List, Optional

from .build_config import BuildConfig, load_build_config
from .build_context import BuildContext, IsoArtifact
from .build_report import report_for, save_report
from .errors import BuildInterrupted, StageFailed
from .lib.env import PATHS
from .logging_utils import configure_logging
from .pipeline import Step, run_pipeline
from .steps import (
    ConfigureSystemStep,
    CreateImageStep,
    FormatStep,
    InstallBootloaderStep,
    InstallPackagesStep,
    MountTreeStep,
    PackageIsoStep,
    PartitionStep,
    PreflightStep,
    SubvolumeLayoutStep,
)
from .teardown import unwind

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2
EXIT_INTERRUPTED = 130


def build_steps() -> List[Step]:
    return [
        PreflightStep(),
        CreateImageStep(),
        PartitionStep(),
        FormatStep(),
        SubvolumeLayoutStep(),
        MountTreeStep(),
        InstallPackagesStep(),
        ConfigureSystemStep(),
        InstallBootloaderStep(),
        PackageIsoStep(),
    ]


@contextlib.contextmanager
def _signal_handlers(handler, *, restore: bool = True) -> Iterator[None]:
    """Install ``handler`` for SIGINT/SIGTERM for the duration of the block.

    With ``restore=False`` the handler stays installed on exit and the
    enclosing scope puts the original ones back.
    """

    if threading.current_thread() is not threading.main_thread():
        yield
        return

    previous = {s: signal.signal(s, handler) for s in (signal.SIGINT, signal.SIGTERM)}
    try:
        yield
    finally:
        if restore:
            for s, h in previous.items():
                signal.signal(s, h)


def _raise_interrupted(signum, _frame):
    raise BuildInterrupted(signum)


def log_build_info(ctx: BuildContext) -> None:
    cfg = ctx.cfg
    logger.info("Project: %s", cfg.image_name)
    logger.info("Version: %s (commit %s, date %s)", cfg.build_version, cfg.build_commit, ctx.build_date)
    logger.info("Layout: %s, roles: %s", cfg.layout.value, ", ".join(sorted(r.value for r in cfg.roles)))
    logger.info("Disk size: %s, EFI size: %s", cfg.disk_size, cfg.efi_size)
    logger.info("Build directory: %s", ctx.build_dir)
    logger.info("Output ISO: %s", ctx.iso_path)


def build(
    cfg: BuildConfig,
    *,
    dry_run: bool = False,
    steps: Optional[List[Step]] = None,
    ctx: Optional[BuildContext] = None,
) -> IsoArtifact:
    """Provision the disk image and package it as an ISO.

    Stages run strictly in order. Whatever happens (success, a failing stage,
    SIGINT/SIGTERM) teardown runs exactly once before this returns or raises.
    """

    ctx = ctx or BuildContext(cfg=cfg, dry_run=dry_run)
    log_build_info(ctx)

    def _checkpoint(c: BuildContext) -> None:
        if not c.dry_run:
            save_report(c.report_path, report_for(c))

    failed_stage: Optional[str] = None
    error: Optional[BaseException] = None
    # the outer scope stays open until unwind has finished, so the previous
    # handlers never come back while resources are still held
    with _signal_handlers(_raise_interrupted):
        try:
            run_pipeline(ctx=ctx, steps=steps if steps is not None else build_steps(), on_stage_done=_checkpoint)
        except StageFailed as e:
            failed_stage, error = e.stage, e
            logger.error("Build failed at stage %s: %s", e.stage, e.cause)
            raise
        except BuildInterrupted as e:
            failed_stage, error = ctx.current_stage, e
            logger.error("Build interrupted during stage %s (signal %d)", ctx.current_stage, e.signum)
            raise
        finally:
            # a second interrupt must not cut the unwind short
            with _signal_handlers(signal.SIG_IGN, restore=False):
                unwind(ctx)
                if not ctx.dry_run:
                    save_report(ctx.report_path, report_for(ctx, error=error, failed_stage=failed_stage))

    if ctx.artifact is None:
        raise StageFailed("80_package_iso", RuntimeError("no ISO artifact was produced"))
    logger.info("Build completed successfully: %s", ctx.artifact.iso_path)
    return ctx.artifact


def run_build(*, config_path: str, log_path: Optional[str], dry_run: bool) -> int:
    try:
        cfg = load_build_config(config_path)
    except (OSError, ValueError) as e:
        configure_logging(log_path=log_path or PATHS.log_default)
        logger.error("Invalid build configuration %s: %s", config_path, e)
        return EXIT_CONFIG

    configure_logging(log_path=log_path or cfg.log_path)
    try:
        build(cfg, dry_run=dry_run)
    except StageFailed as e:
        logger.error("FATAL [%s] %s", e.stage, e.cause)
        return EXIT_FAILED
    except BuildInterrupted:
        return EXIT_INTERRUPTED
    return EXIT_OK


def main(argv: Optional[list[str]] = None) -> int:
    p = argparse.ArgumentParser(prog="archonos-build")
    p.add_argument("--config", default=PATHS.config_default)
    p.add_argument("--log", default=None, help="Build log path (default: paths.log from the config)")
    p.add_argument("--dry-run", action="store_true", help="Log commands without running them")

    args = p.parse_args(argv)

    return run_build(
        config_path=args.config,
        log_path=args.log,
        dry_run=bool(args.dry_run),
    )


if __name__ == "__main__":
    raise SystemExit(main())
