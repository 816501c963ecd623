from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional

from .build_context import BuildContext


def report_for(ctx: BuildContext, *, error: Optional[BaseException] = None, failed_stage: Optional[str] = None) -> Dict[str, Any]:
    report: Dict[str, Any] = {
        "image": ctx.cfg.image_name,
        "version": ctx.cfg.build_version,
        "commit": ctx.cfg.build_commit,
        "date": ctx.build_date,
        "layout": ctx.cfg.layout.value,
        "dry_run": ctx.dry_run,
        "completed_stages": list(ctx.completed_stages),
        "current_stage": ctx.current_stage,
        "device": ctx.device.path if ctx.device else None,
        "partitions": {h.kind.value: h.node for h in (ctx.device.partitions if ctx.device else [])},
        "subvolumes": {role.value: sv.name for role, sv in ctx.subvolumes.items()},
        "mounted": [m.target for m in ctx.mounted],
        "teardown_warnings": [str(w) for w in ctx.teardown_warnings],
        "unwound": ctx.unwound,
    }
    if failed_stage or error is not None:
        report["failed_stage"] = failed_stage
        report["error"] = str(error) if error is not None else None
    if ctx.artifact is not None:
        report["artifact"] = {
            "iso": str(ctx.artifact.iso_path),
            "image": str(ctx.artifact.image_path),
            "checksums": str(ctx.artifact.checksum_path),
            "sha256": ctx.artifact.sha256,
        }
    return report


def save_report(path: Path, report: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(report, indent=2, sort_keys=True) + "\n", encoding="utf-8")


def load_report(path: Path) -> Dict[str, Any]:
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError("build-report.json must contain an object")
    return data
