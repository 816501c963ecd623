from .step_00_preflight import PreflightStep
from .step_10_create_image import CreateImageStep
from .step_20_partition import PartitionStep
from .step_30_format import FormatStep
from .step_40_subvolumes import SubvolumeLayoutStep
from .step_45_mount_tree import MountTreeStep
from .step_50_install_packages import InstallPackagesStep
from .step_60_configure_system import ConfigureSystemStep
from .step_70_install_bootloader import InstallBootloaderStep
from .step_80_package_iso import PackageIsoStep

__all__ = [
    "PreflightStep",
    "CreateImageStep",
    "PartitionStep",
    "FormatStep",
    "SubvolumeLayoutStep",
    "MountTreeStep",
    "InstallPackagesStep",
    "ConfigureSystemStep",
    "InstallBootloaderStep",
    "PackageIsoStep",
]
