from __future__ import annotations

import datetime as _dt
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from .build_config import BuildConfig
from .errors import TeardownWarning
from .lib.loopdev import BlockDevice, PartitionHandle
from .lib.mounts import MountEntry
from .lib.subvolumes import Role, Subvolume


@dataclass(frozen=True)
class IsoArtifact:
    iso_path: Path
    image_path: Path
    checksum_path: Path
    sha256: str


@dataclass
class BuildContext:
    """Everything a build has acquired so far.

    Stages fill it in as they succeed; teardown reads it to decide what to
    undo and never assumes more than what is recorded here.
    """

    cfg: BuildConfig
    dry_run: bool = False
    # fixed once per build so every stage derives the same output names
    build_date: str = field(default_factory=lambda: _dt.datetime.now(_dt.timezone.utc).strftime("%Y%m%d"))

    device: Optional[BlockDevice] = None
    efi: Optional[PartitionHandle] = None
    data: Optional[PartitionHandle] = None
    subvolumes: Dict[Role, Subvolume] = field(default_factory=dict)
    mount_plan: List[MountEntry] = field(default_factory=list)
    mounted: List[MountEntry] = field(default_factory=list)
    scratch_dirs: List[Path] = field(default_factory=list)

    current_stage: Optional[str] = None
    completed_stages: List[str] = field(default_factory=list)
    teardown_warnings: List[TeardownWarning] = field(default_factory=list)
    unwound: bool = False
    artifact: Optional[IsoArtifact] = None

    @property
    def mounted_count(self) -> int:
        return len(self.mounted)

    @property
    def build_dir(self) -> Path:
        return Path(self.cfg.build_dir)

    @property
    def work_dir(self) -> Path:
        return self.build_dir / "work"

    @property
    def mount_dir(self) -> Path:
        return self.build_dir / "mnt"

    @property
    def iso_dir(self) -> Path:
        return self.build_dir / "iso"

    @property
    def scratch_mount(self) -> Path:
        return self.work_dir / "btrfs_temp"

    @property
    def image_path(self) -> Path:
        return self.build_dir / f"{self.cfg.image_name}.img"

    @property
    def iso_path(self) -> Path:
        return self.build_dir / f"{self.cfg.image_name}-{self.cfg.build_version}-{self.build_date}.iso"

    @property
    def checksum_path(self) -> Path:
        return self.build_dir / "checksums.txt"

    @property
    def report_path(self) -> Path:
        return self.build_dir / "build-report.json"
