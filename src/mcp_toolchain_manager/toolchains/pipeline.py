"""Download, verify, extract and post-process a toolchain install."""

import asyncio
import shutil
from contextlib import aclosing
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

import aiohttp

from mcp_toolchain_manager.config import Settings
from mcp_toolchain_manager.errors import ExtractError, ToolchainNotFound
from mcp_toolchain_manager.logging import get_logger
from mcp_toolchain_manager.environments.manifest import client_timeout
from mcp_toolchain_manager.environments.registry import Registry
from mcp_toolchain_manager.processes.commands import clone_sdk
from mcp_toolchain_manager.toolchains.download import download_archive, verify_checksum
from mcp_toolchain_manager.toolchains.extract import extract_events
from mcp_toolchain_manager.types import (
    WITH_CLONE,
    WITHOUT_CLONE,
    EnvironmentRecord,
    ExtractCompleted,
    ExtractEvent,
    ExtractFailed,
    ExtractProgress,
    InstallPhase,
    InstallRun,
    ProgressAllocation,
    ToolchainDescriptor,
)
from mcp_toolchain_manager.versions import sort_newest_first

logger = get_logger(__name__)

TOOLCHAIN_DIR_NAME = "toolchain"


def get_latest_toolchain(
    toolchains: Iterable[ToolchainDescriptor],
) -> Optional[ToolchainDescriptor]:
    """Newest toolchain that can actually be downloaded."""
    downloadable = [t for t in toolchains if t.name and t.sha512]
    ordered = sort_newest_first(downloadable, key=lambda t: t.version)
    return ordered[0] if ordered else None


def resolve_toolchain(
    record: EnvironmentRecord, toolchain_version: Optional[str] = None
) -> ToolchainDescriptor:
    if toolchain_version is None:
        toolchain = get_latest_toolchain(record.toolchains)
    else:
        toolchain = next(
            (t for t in record.toolchains if t.version == toolchain_version and t.name),
            None,
        )
    if toolchain is None:
        raise ToolchainNotFound(record.version, toolchain_version)
    return toolchain


def apply_extract_event(
    record: Optional[EnvironmentRecord],
    event: ExtractEvent,
    allocation: ProgressAllocation,
    archive: Path,
) -> Optional[Dict[str, Any]]:
    """Map an extraction event onto the registry changes it implies."""
    match event:
        case ExtractProgress(current=current, total=total):
            progress = round(current / total * allocation.extract_share) + allocation.extract_base
            if record is not None and record.progress == progress:
                return None
            return {"progress": progress}
        case ExtractCompleted(dest=dest):
            return {"toolchain_dir": dest, "progress": None}
        case ExtractFailed(cause=cause):
            raise ExtractError(archive, str(cause)) from cause
    raise TypeError(f"Unknown extract event: {event!r}")


def _transition(run: InstallRun, phase: InstallPhase) -> None:
    logger.debug(
        {"event": "install_phase", "version": run.version, "from": run.phase.name, "to": phase.name}
    )
    run.phase = phase


async def extract_toolchain(
    registry: Registry,
    version: str,
    archive: Path,
    dest: Path,
    allocation: ProgressAllocation,
) -> None:
    async with aclosing(extract_events(archive, dest)) as events:
        async for event in events:
            registry.update(
                version,
                lambda record: apply_extract_event(record, event, allocation, archive),
            )


async def install_toolchain(
    registry: Registry,
    settings: Settings,
    version: str,
    toolchain_version: Optional[str] = None,
    clone: bool = True,
    session: Optional[aiohttp.ClientSession] = None,
) -> EnvironmentRecord:
    """Run the full install pipeline for one environment version."""
    record = registry.require(version)
    run = InstallRun(
        version=version,
        toolchain=resolve_toolchain(record, toolchain_version),
        dest=settings.install_dir / version / TOOLCHAIN_DIR_NAME,
    )
    allocation = WITH_CLONE if clone else WITHOUT_CLONE
    previous_dir = record.toolchain_dir

    logger.info(
        {
            "event": "install_started",
            "version": version,
            "toolchain": run.toolchain.version,
            "archive": run.toolchain.name,
        }
    )

    try:
        _transition(run, InstallPhase.DOWNLOADING)
        registry.upsert(version=version, progress=None)
        if session is None:
            async with aiohttp.ClientSession(timeout=client_timeout(settings)) as own_session:
                run.archive, digest = await download_archive(
                    own_session, registry, settings, version, run.toolchain, allocation
                )
        else:
            run.archive, digest = await download_archive(
                session, registry, settings, version, run.toolchain, allocation
            )

        _transition(run, InstallPhase.VERIFYING)
        verify_checksum(
            settings.toolchain_url(run.toolchain.name),
            run.archive,
            run.toolchain.sha512,
            digest,
        )

        _transition(run, InstallPhase.EXTRACTING)
        await extract_toolchain(registry, version, run.archive, run.dest, allocation)

        if clone:
            _transition(run, InstallPhase.POST_PROCESSING)
            await clone_sdk(registry, settings, version)

        _transition(run, InstallPhase.DONE)
    except Exception as e:
        failed_in = run.phase
        _transition(run, InstallPhase.FAILED)
        # A half-extracted tree must not look installed.
        restored = (
            previous_dir
            if failed_in in (InstallPhase.DOWNLOADING, InstallPhase.VERIFYING)
            else None
        )
        if failed_in is InstallPhase.EXTRACTING:
            await asyncio.to_thread(shutil.rmtree, run.dest, ignore_errors=True)
        if failed_in is not InstallPhase.POST_PROCESSING:
            registry.upsert(version=version, progress=None, toolchain_dir=restored)
        logger.error(
            {"event": "install_failed", "version": version, "phase": failed_in.name, "error": str(e)}
        )
        raise

    logger.info({"event": "install_complete", "version": version, "toolchain_dir": str(run.dest)})
    return registry.require(version)
