"""Core type definitions"""

from dataclasses import dataclass, fields, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from mcp_toolchain_manager.errors import ExternalToolError

InstallPhase = Enum(
    "InstallPhase",
    ["IDLE", "DOWNLOADING", "VERIFYING", "EXTRACTING", "POST_PROCESSING", "DONE", "FAILED"],
)


@dataclass(frozen=True)
class ToolchainDescriptor:
    """Downloadable toolchain archive for one environment"""
    version: str
    name: Optional[str] = None
    sha512: Optional[str] = None

    def merge(self, other: "ToolchainDescriptor") -> "ToolchainDescriptor":
        changes = {
            f.name: getattr(other, f.name)
            for f in fields(other)
            if getattr(other, f.name) is not None
        }
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {"version": self.version, "name": self.name, "sha512": self.sha512}


@dataclass(frozen=True)
class EnvironmentRecord:
    """Installed or available SDK environment"""
    version: str
    toolchain_dir: Optional[Path] = None
    progress: Optional[int] = None
    is_in_process: bool = False
    is_cloning: bool = False
    is_removing: bool = False
    is_west_present: bool = False
    toolchains: Tuple[ToolchainDescriptor, ...] = ()

    @property
    def is_installed(self) -> bool:
        return self.toolchain_dir is not None

    @property
    def env_dir(self) -> Optional[Path]:
        return self.toolchain_dir.parent if self.toolchain_dir else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "toolchain_dir": str(self.toolchain_dir) if self.toolchain_dir else None,
            "progress": self.progress,
            "is_in_process": self.is_in_process,
            "is_cloning": self.is_cloning,
            "is_removing": self.is_removing,
            "is_west_present": self.is_west_present,
            "is_installed": self.is_installed,
            "toolchains": [t.to_dict() for t in self.toolchains],
        }


RECORD_FIELDS = frozenset(f.name for f in fields(EnvironmentRecord))


@dataclass(frozen=True)
class ProgressAllocation:
    """Split of the 0-100 progress scale between download and extraction"""
    download_share: int
    extract_share: int

    @property
    def extract_base(self) -> int:
        return self.download_share


# With an SDK clone follow-up the final percent is left for post-processing.
WITH_CLONE = ProgressAllocation(download_share=49, extract_share=50)
WITHOUT_CLONE = ProgressAllocation(download_share=50, extract_share=49)


@dataclass(frozen=True)
class CommandResult:
    """Completed external process"""
    returncode: int
    stdout: bytes = b""
    stderr: bytes = b""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def check(self, description: str) -> "CommandResult":
        """Raise ExternalToolError unless the process exited cleanly."""
        if not self.ok:
            stderr = self.stderr.decode(errors="replace")
            raise ExternalToolError(
                f"{description} failed with code {self.returncode}: {stderr.strip()}",
                returncode=self.returncode,
                stderr=stderr,
            )
        return self


@dataclass(frozen=True)
class ExtractProgress:
    current: int
    total: int


@dataclass(frozen=True)
class ExtractCompleted:
    dest: Path


@dataclass(frozen=True)
class ExtractFailed:
    cause: Exception


ExtractEvent = ExtractProgress | ExtractCompleted | ExtractFailed


@dataclass
class InstallRun:
    """Book-keeping for a single install invocation"""
    version: str
    phase: InstallPhase = InstallPhase.IDLE
    toolchain: Optional[ToolchainDescriptor] = None
    archive: Optional[Path] = None
    dest: Optional[Path] = None
