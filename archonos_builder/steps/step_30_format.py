from __future__ import annotations

from ..build_context import BuildContext
from ..lib.filesystem import format_data, format_efi


class FormatStep:
    step_id = "30_format"

    def run(self, ctx: BuildContext) -> None:
        if ctx.efi is None or ctx.data is None:
            raise RuntimeError("Partitions not resolved; run the partition stage first")
        format_efi(ctx.efi, ctx.cfg.efi_label, dry_run=ctx.dry_run)
        format_data(ctx.data, ctx.cfg.data_label, dry_run=ctx.dry_run)
