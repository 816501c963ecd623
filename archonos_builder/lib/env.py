from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Paths:
    build_dir: str = "/tmp/archonos-build"
    log_default: str = "/var/log/archonos-build.log"
    config_default: str = "build_config.yaml"


PATHS = Paths()
