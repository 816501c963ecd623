from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Mapping, Optional

from .lib.env import PATHS
from .lib.filesystem import validate_fat_label
from .lib.manifests import load_base_packages
from .lib.mounts import DEFAULT_BTRFS_OPTIONS
from .lib.subvolumes import OS_ROLES, Layout, Role
from .lib.units import parse_size, to_mib


@dataclass(frozen=True)
class BuildConfig:
    raw: Dict[str, Any]
    env: Optional[Mapping[str, str]] = None

    def _section(self, name: str) -> Dict[str, Any]:
        return self.raw.get(name) or {}

    def _env(self, key: str) -> Optional[str]:
        return (self.env if self.env is not None else os.environ).get(key) or None

    @property
    def image_name(self) -> str:
        return str(self._env("IMAGE_NAME") or self._section("image").get("name") or "archonos")

    @property
    def disk_size(self) -> str:
        return str(self._section("image").get("disk_size") or "4G")

    @property
    def disk_size_bytes(self) -> int:
        return parse_size(self.disk_size)

    @property
    def efi_size(self) -> str:
        return str(self._section("image").get("efi_size") or "512M")

    @property
    def efi_label(self) -> str:
        return str(self._section("image").get("efi_label") or "ARCHON_EFI")

    @property
    def data_label(self) -> str:
        return str(self._section("image").get("data_label") or "ARCHONOS_ROOT")

    @property
    def build_dir(self) -> str:
        return str(self._env("BUILD_DIR") or self._section("paths").get("build_dir") or PATHS.build_dir)

    @property
    def log_path(self) -> str:
        return str(self._section("paths").get("log") or PATHS.log_default)

    @property
    def layout(self) -> Layout:
        return Layout(str(self._section("layout").get("variant") or Layout.AB_ATOMIC.value))

    @property
    def roles(self) -> FrozenSet[Role]:
        extra = [Role(str(r)) for r in (self._section("layout").get("extra_roles") or [])]
        # OS roles come from the variant only
        os_roles = sorted(r.value for r in extra if r in OS_ROLES)
        if os_roles:
            raise ValueError(f"layout.extra_roles cannot add OS roles ({', '.join(os_roles)}); choose layout.variant instead")
        return self.layout.roles | frozenset(extra)

    @property
    def mount_options(self) -> str:
        return str(self._section("layout").get("mount_options") or DEFAULT_BTRFS_OPTIONS)

    @property
    def loop_wait_seconds(self) -> float:
        v = self._section("loop").get("wait_seconds")
        return float(5 if v is None else v)

    @property
    def min_free_bytes(self) -> int:
        return parse_size(self._section("preflight").get("min_free_bytes") or "8G")

    @property
    def package_installer(self) -> str:
        return str(self._section("packages").get("installer") or "pacstrap")

    @property
    def packages(self) -> List[str]:
        sec = self._section("packages")
        base = list(sec.get("base") or load_base_packages())
        for p in sec.get("extra") or []:
            if p not in base:
                base.append(str(p))
        return base

    @property
    def verify_files(self) -> List[str]:
        v = self._section("packages").get("verify_files")
        return ["usr/bin/systemd"] if v is None else [str(f).lstrip("/") for f in v]

    @property
    def min_package_count(self) -> int:
        v = self._section("packages").get("min_count")
        return 50 if v is None else int(v)

    @property
    def configure_script(self) -> Optional[str]:
        v = self._section("configure").get("script")
        return str(v) if v else None

    @property
    def configure_env(self) -> Dict[str, str]:
        env = {"HOSTNAME": "archonos", "TIMEZONE": "UTC", "LOCALE": "en_US.UTF-8", "KEYMAP": "us"}
        env.update({str(k): str(v) for k, v in (self._section("configure").get("env") or {}).items()})
        return env

    @property
    def kernel(self) -> str:
        return str(self._section("bootloader").get("kernel") or "vmlinuz-linux")

    @property
    def initramfs(self) -> str:
        return str(self._section("bootloader").get("initramfs") or "initramfs-linux.img")

    @property
    def fallback_initramfs(self) -> str:
        return str(self._section("bootloader").get("fallback_initramfs") or "initramfs-linux-fallback.img")

    @property
    def kernel_cmdline(self) -> str:
        v = self._section("bootloader").get("cmdline")
        return "quiet" if v is None else str(v)

    @property
    def iso_volume_id(self) -> str:
        return str(self._section("iso").get("volume_id") or "ARCHONOS")

    @property
    def iso_extra_args(self) -> List[str]:
        return [str(a) for a in (self._section("iso").get("extra_args") or [])]

    @property
    def build_version(self) -> str:
        return self._env("GITHUB_RUN_NUMBER") or "dev"

    @property
    def build_commit(self) -> str:
        sha = self._env("GITHUB_SHA")
        return sha[:7] if sha else "unknown"

    def validate(self) -> "BuildConfig":
        """Fail early on values that would only break half-way through a build."""

        validate_fat_label(self.efi_label)
        efi_mib = to_mib(self.efi_size)
        disk_mib = self.disk_size_bytes // (1024 * 1024)
        if efi_mib <= 0 or efi_mib + 2 >= disk_mib:
            raise ValueError(f"image.efi_size {self.efi_size} does not fit a {self.disk_size} disk")
        # unknown variants, unknown roles and extra OS roles raise ValueError
        self.layout
        self.roles
        return self


def load_build_config(path: str, *, env: Mapping[str, str] | None = None) -> BuildConfig:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(path)

    if p.suffix.lower() not in {".yaml", ".yml"}:
        raise ValueError("build config must be YAML")

    try:
        import yaml  # type: ignore
    except Exception as e:
        raise RuntimeError("PyYAML is required to read build_config.yaml") from e

    raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ValueError("build_config.yaml must contain a mapping/object")

    return BuildConfig(raw=raw, env=env).validate()
