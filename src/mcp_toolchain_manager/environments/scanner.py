"""Detection of toolchains already installed on disk."""

from pathlib import Path
from typing import List

from mcp_toolchain_manager.errors import DirectoryNotFound
from mcp_toolchain_manager.logging import get_logger
from mcp_toolchain_manager.environments.registry import Registry
from mcp_toolchain_manager.types import EnvironmentRecord, ToolchainDescriptor

logger = get_logger(__name__)

ARCHIVE_SUFFIX = ".zip"
STAGING_NAME = "toBeDeleted"
MARKER = Path("ncsmgr") / "manifest.env"
WEST_CONFIG = Path(".west") / "config"


def find_toolchain_markers(install_dir: Path) -> List[Path]:
    """Return every ``<env>/<entry>/ncsmgr/manifest.env`` under the install root."""
    if not install_dir.is_dir():
        raise DirectoryNotFound(install_dir)

    markers = []
    for env_dir in sorted(
        p for p in install_dir.iterdir() if p.is_dir() and p.name != STAGING_NAME
    ):
        for entry in sorted(env_dir.iterdir()):
            if entry.name.endswith(ARCHIVE_SUFFIX):
                continue
            marker = entry / MARKER
            if marker.exists():
                markers.append(marker)
    return markers


def scan_local_environments(registry: Registry, install_dir: Path) -> List[EnvironmentRecord]:
    """Upsert a record for every installed toolchain found under ``install_dir``."""
    install_dir = Path(install_dir)
    found = []

    for marker in find_toolchain_markers(install_dir):
        toolchain_dir = marker.parent.parent
        version = toolchain_dir.parent.name
        is_west_present = (toolchain_dir.parent / WEST_CONFIG).exists()

        registry.upsert(
            version=version,
            toolchain_dir=toolchain_dir,
            is_west_present=is_west_present,
        )
        record = registry.upsert_toolchain(version, ToolchainDescriptor(version=version))
        found.append(record)

        logger.debug(
            {
                "event": "local_toolchain_found",
                "version": version,
                "toolchain_dir": str(toolchain_dir),
                "west": is_west_present,
            }
        )

    logger.info({"event": "local_scan_complete", "root": str(install_dir), "found": len(found)})
    return found
