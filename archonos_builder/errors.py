from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence


class BuildError(RuntimeError):
    """Base class for every fatal provisioning error."""


class ResourceUnavailable(BuildError):
    """No free loop device, not enough disk space, missing tools or privileges."""


class DeviceNotFound(BuildError):
    """An expected block-special node is absent after a creation step."""


class LayoutIncomplete(BuildError):
    """An expected subvolume is missing after creation."""


class LayoutMismatch(BuildError):
    """The partition table read back from the device differs from the request."""


class ExternalToolFailure(BuildError):
    def __init__(self, argv: Sequence[str], returncode: int, stdout: str = "", stderr: str = "") -> None:
        self.argv = list(argv)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        msg = f"Command failed ({returncode}): {' '.join(self.argv)}"
        if stderr.strip():
            msg += f"\n{stderr.strip()}"
        super().__init__(msg)


class StageFailed(BuildError):
    def __init__(self, stage: str, cause: BaseException) -> None:
        self.stage = stage
        self.cause = cause
        super().__init__(f"stage {stage} failed: {cause}")


class BuildInterrupted(BaseException):
    """Raised from the signal handler so the unwind path runs."""

    def __init__(self, signum: int) -> None:
        self.signum = signum
        super().__init__(f"interrupted by signal {signum}")


@dataclass(frozen=True)
class TeardownWarning:
    """A non-fatal problem met while unwinding."""

    action: str
    target: str
    detail: str

    def __str__(self) -> str:
        return f"{self.action} {self.target}: {self.detail}"
