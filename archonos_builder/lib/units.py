from __future__ import annotations

import re
from typing import Union

MiB = 1024 * 1024

_UNITS = {"": 1, "K": 1024, "M": 1024**2, "G": 1024**3, "T": 1024**4}
_SIZE_RE = re.compile(r"^\s*(\d+)\s*([KMGT]?)(?:I?B)?\s*$", re.IGNORECASE)


def parse_size(spec: Union[str, int]) -> int:
    """Parse ``512M``/``4G``/``512MiB``/bytes into a byte count (binary units)."""

    if isinstance(spec, int):
        return spec
    m = _SIZE_RE.match(str(spec))
    if not m:
        raise ValueError(f"Invalid size: {spec!r}")
    return int(m.group(1)) * _UNITS[m.group(2).upper()]


def to_mib(spec: Union[str, int]) -> int:
    size = parse_size(spec)
    if size % MiB:
        raise ValueError(f"Size must be a whole number of MiB: {spec!r}")
    return size // MiB
