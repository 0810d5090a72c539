"""Environment lifecycle management."""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional

import aiohttp

from mcp_toolchain_manager.config import (
    Settings,
    is_first_install,
    load_settings,
    set_has_installed,
)
from mcp_toolchain_manager.errors import (
    InvalidRecord,
    OperationInProgress,
    RemoveError,
    log_error,
)
from mcp_toolchain_manager.logging import get_logger
from mcp_toolchain_manager.environments.manifest import download_index
from mcp_toolchain_manager.environments.registry import Registry
from mcp_toolchain_manager.environments.remove import (
    purge_staging,
    remove_environment,
    remove_toolchain,
)
from mcp_toolchain_manager.environments.scanner import scan_local_environments
from mcp_toolchain_manager.processes import commands
from mcp_toolchain_manager.toolchains.pipeline import install_toolchain
from mcp_toolchain_manager.types import EnvironmentRecord

logger = get_logger(__name__)


class EnvironmentManager:
    """Entry point for every operation a front end can trigger.

    Holds the registry, the global in-process flag and the pending error
    dialog message. At most one install, clone or removal runs at a time.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        registry: Optional[Registry] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.settings = settings or load_settings()
        self.registry = registry or Registry()
        self.session = session
        self.in_process = False
        self.active_version: Optional[str] = None
        self.selected_version: Optional[str] = None
        self.error_dialog: Optional[str] = None
        self.show_first_install_notice = False

    @asynccontextmanager
    async def operation(self, version: str) -> AsyncIterator[EnvironmentRecord]:
        """Hold the in-process flag for ``version``; always released on exit."""
        if self.in_process:
            raise OperationInProgress(version, self.active_version)
        record = self.registry.require(version)

        self.in_process = True
        self.active_version = version
        self.registry.upsert(version=version, is_in_process=True)
        try:
            yield record
        finally:
            self.in_process = False
            self.active_version = None
            if self.registry.get(version) is not None:
                self.registry.upsert(version=version, is_in_process=False)

    async def initialize(self) -> List[EnvironmentRecord]:
        """Create the install root, scan it, then merge the remote index."""
        self.settings.install_dir.mkdir(parents=True, exist_ok=True)
        purge_staging(self.settings.install_dir)
        self.rescan()
        await download_index(self.registry, self.settings, self.session)
        return self.registry.snapshot()

    def rescan(self) -> List[EnvironmentRecord]:
        return scan_local_environments(self.registry, self.settings.install_dir)

    def list_environments(self) -> List[EnvironmentRecord]:
        return self.registry.snapshot()

    def select(self, version: str) -> None:
        self.selected_version = version

    async def install(
        self, version: str, toolchain_version: Optional[str] = None, clone: bool = True
    ) -> EnvironmentRecord:
        self.select(version)
        self.show_first_install_notice = is_first_install(self.settings)

        async with self.operation(version):
            await install_toolchain(
                self.registry,
                self.settings,
                version,
                toolchain_version=toolchain_version,
                clone=clone,
                session=self.session,
            )
            set_has_installed(self.settings)
            self.rescan()

        return self.registry.require(version)

    async def clone(self, version: str) -> EnvironmentRecord:
        async with self.operation(version):
            await commands.clone_sdk(self.registry, self.settings, version)
            self.rescan()
        return self.registry.require(version)

    async def remove(self, version: str) -> bool:
        """Remove toolchain and SDK; failures become an error dialog message."""
        async with self.operation(version):
            try:
                await remove_environment(self.registry, version)
            except RemoveError as e:
                log_error(e, {"version": version}, logger)
                self.error_dialog = str(e)
                return False
        return True

    async def remove_toolchain(self, version: str) -> bool:
        async with self.operation(version):
            try:
                await remove_toolchain(self.registry, version)
            except RemoveError as e:
                log_error(e, {"version": version}, logger)
                self.error_dialog = str(e)
                return False
        return True

    def dismiss_error_dialog(self) -> None:
        self.error_dialog = None

    def _toolchain_dir(self, version: str) -> Path:
        record = self.registry.require(version)
        if record.toolchain_dir is None:
            raise InvalidRecord(f"Environment {version} has no toolchain installed")
        return record.toolchain_dir

    async def open_folder(self, version: str) -> int:
        return await commands.open_folder(self._toolchain_dir(version).parent)

    async def open_toolchain_folder(self, version: str) -> int:
        return await commands.open_folder(self._toolchain_dir(version))

    async def open_terminal(self, version: str) -> int:
        return await commands.open_terminal(self.settings, self._toolchain_dir(version))

    async def open_ide(self, version: str) -> int:
        return await commands.open_ide(self.settings, self._toolchain_dir(version))

    def state(self) -> Dict[str, Any]:
        return {
            "environments": [r.to_dict() for r in self.registry.snapshot()],
            "in_process": self.in_process,
            "selected_version": self.selected_version,
            "error_dialog": self.error_dialog,
            "show_first_install_notice": self.show_first_install_notice,
        }
