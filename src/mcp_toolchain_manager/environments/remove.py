"""Destructive removal of installed environments."""

import asyncio
import re
import shutil
from pathlib import Path

from mcp_toolchain_manager.errors import RemoveError
from mcp_toolchain_manager.logging import get_logger
from mcp_toolchain_manager.environments.registry import Registry
from mcp_toolchain_manager.environments.scanner import STAGING_NAME

logger = get_logger(__name__)


def failure_cause(error: Exception) -> str:
    """Short human readable cause extracted from an error."""
    if isinstance(error, OSError) and error.strerror:
        return error.strerror
    parts = re.split(r"[:,] ", str(error))
    return parts[2] if len(parts) > 2 else parts[-1]


def removal_message(path: Path, error: Exception) -> str:
    return (
        f"Failed to remove {path}, {failure_cause(error)}. "
        "Please close any application or window that might keep this "
        "environment locked, then try to remove it again."
    )


def _move_overwrite(src: Path, dst: Path) -> None:
    if dst.exists():
        shutil.rmtree(dst)
    shutil.move(str(src), str(dst))


def purge_staging(install_dir: Path) -> bool:
    """Delete a staging tree left behind by an interrupted removal."""
    staging = install_dir / STAGING_NAME
    if not staging.exists():
        return False
    try:
        shutil.rmtree(staging)
    except OSError as e:
        logger.warning({"event": "staging_purge_failed", "path": str(staging), "error": str(e)})
        return False
    logger.info({"event": "staging_purged", "path": str(staging)})
    return True


async def remove_environment(registry: Registry, version: str) -> None:
    """Move the environment directory aside, then delete it.

    A failed move leaves the record in place and raises ``RemoveError`` with a
    dialog-ready message. Once the move succeeded the environment counts as
    removed; a staging tree that could not be deleted is purged later.
    """
    record = registry.require(version)
    if record.toolchain_dir is None:
        raise RemoveError(f"Environment {version} is not installed")

    src_dir = record.toolchain_dir.parent
    staging = src_dir.parent / STAGING_NAME
    moved = False

    registry.upsert(version=version, is_removing=True)
    try:
        await asyncio.to_thread(_move_overwrite, src_dir, staging)
        moved = True
        await asyncio.to_thread(shutil.rmtree, staging)
    except OSError as e:
        if not moved:
            logger.error({"event": "remove_failed", "path": str(src_dir), "error": str(e)})
            raise RemoveError(removal_message(src_dir, e)) from e
        logger.warning(
            {"event": "staging_delete_failed", "path": str(staging), "error": str(e)}
        )
    finally:
        registry.upsert(version=version, is_removing=False)

    registry.remove(version)
    logger.info({"event": "environment_removed", "version": version, "path": str(src_dir)})


async def remove_toolchain(registry: Registry, version: str) -> None:
    """Delete only the toolchain directory, keeping the SDK checkout."""
    record = registry.require(version)
    if record.toolchain_dir is None:
        raise RemoveError(f"Environment {version} has no toolchain installed")

    toolchain_dir = record.toolchain_dir
    registry.upsert(version=version, is_removing=True)
    try:
        await asyncio.to_thread(shutil.rmtree, toolchain_dir)
    except OSError as e:
        logger.error({"event": "remove_failed", "path": str(toolchain_dir), "error": str(e)})
        raise RemoveError(removal_message(toolchain_dir, e)) from e
    finally:
        registry.upsert(version=version, is_removing=False)

    registry.upsert(version=version, toolchain_dir=None)
    logger.info({"event": "toolchain_removed", "version": version, "path": str(toolchain_dir)})
