"""External process invocation."""

import asyncio
import shutil
import sys
from pathlib import Path
from typing import Mapping, Optional, Sequence, Set

from mcp_toolchain_manager.config import Settings
from mcp_toolchain_manager.errors import ExternalToolError, InvalidRecord
from mcp_toolchain_manager.logging import get_logger
from mcp_toolchain_manager.environments.registry import Registry
from mcp_toolchain_manager.types import CommandResult

logger = get_logger(__name__)

INIT_SCRIPT = "unset ZEPHYR_BASE; toolchain/ncsmgr/ncsmgr init-ncs; sleep 3"

_background: Set[asyncio.Task] = set()


async def run_command(
    executable: Path | str,
    args: Sequence[str] = (),
    env: Optional[Mapping[str, str]] = None,
    cwd: Optional[Path] = None,
) -> CommandResult:
    """Run an executable with an argument list and collect its output."""
    cmd = [str(executable), *args]
    logger.debug({"event": "cmd_exec", "cmd": cmd, "cwd": str(cwd) if cwd else None})

    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            cwd=cwd,
            env=dict(env) if env is not None else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise ExternalToolError(f"Unable to start {executable}: {e}") from e

    stdout, stderr = await process.communicate()

    if stdout:
        logger.debug({"event": "cmd_stdout", "cmd": cmd, "output": stdout.decode(errors="replace")})
    if stderr:
        logger.debug({"event": "cmd_stderr", "cmd": cmd, "output": stderr.decode(errors="replace")})
    logger.debug({"event": "cmd_complete", "cmd": cmd, "returncode": process.returncode})

    return CommandResult(process.returncode, stdout, stderr)


async def launch(
    executable: Path | str, args: Sequence[str] = (), cwd: Optional[Path] = None
) -> int:
    """Start a detached process without waiting for it; returns its pid."""
    cmd = [str(executable), *args]
    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            cwd=cwd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )
    except OSError as e:
        raise ExternalToolError(f"Unable to start {executable}: {e}") from e

    reaper = asyncio.create_task(process.wait())
    _background.add(reaper)
    reaper.add_done_callback(_background.discard)

    logger.info({"event": "process_launched", "cmd": cmd, "pid": process.pid})
    return process.pid


def folder_opener() -> str:
    match sys.platform:
        case "darwin":
            return "open"
        case "win32":
            return "explorer"
        case _:
            return "xdg-open"


async def open_folder(path: Path) -> int:
    if not path.is_dir():
        raise ExternalToolError(f"Folder {path} does not exist")
    return await launch(folder_opener(), [str(path)])


async def open_terminal(settings: Settings, toolchain_dir: Path) -> int:
    return await launch(toolchain_dir / settings.shell_executable, cwd=toolchain_dir.parent)


async def open_ide(settings: Settings, toolchain_dir: Path) -> int:
    return await launch(toolchain_dir / settings.ide_launcher, cwd=toolchain_dir)


async def clone_sdk(registry: Registry, settings: Settings, version: str) -> None:
    """Check out the SDK next to an installed toolchain with its bundled shell."""
    record = registry.require(version)
    if record.toolchain_dir is None:
        raise InvalidRecord(f"Environment {version} has no toolchain installed")

    env_dir = record.toolchain_dir.parent
    west_dir = env_dir / ".west"
    if west_dir.exists():
        await asyncio.to_thread(shutil.rmtree, west_dir)

    registry.upsert(version=version, is_cloning=True)
    try:
        result = await run_command(
            record.toolchain_dir / settings.shell_executable,
            ["-c", INIT_SCRIPT],
            cwd=env_dir,
        )
        result.check(f"Cloning SDK {version}")
    finally:
        registry.upsert(version=version, is_cloning=False)

    logger.info({"event": "sdk_cloned", "version": version, "env_dir": str(env_dir)})
