"""Settings and persistent state."""

import json
import os
import posixpath
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Optional

import appdirs

from mcp_toolchain_manager.logging import get_logger

logger = get_logger(__name__)

APP_NAME = "mcp-toolchain-manager"

DEFAULT_INDEX_URL = "https://developer.nordicsemi.com/.pc-tools/toolchain/index.json"
DEFAULT_INSTALL_DIR = Path.home() / "ncs"
DEFAULT_NETWORK_TIMEOUT = 60.0
DEFAULT_CHUNK_SIZE = 8192

ENV_INSTALL_DIR = "MCP_TOOLCHAIN_INSTALL_DIR"
ENV_INDEX_URL = "MCP_TOOLCHAIN_INDEX_URL"
ENV_TIMEOUT = "MCP_TOOLCHAIN_TIMEOUT"


def get_config_dir() -> Path:
    return Path(appdirs.user_config_dir(APP_NAME))


@dataclass(frozen=True)
class Settings:
    """Runtime configuration"""
    install_dir: Path = DEFAULT_INSTALL_DIR
    toolchain_index_url: str = DEFAULT_INDEX_URL
    network_timeout: float = DEFAULT_NETWORK_TIMEOUT
    chunk_size: int = DEFAULT_CHUNK_SIZE
    shell_executable: str = "git-bash.exe"
    ide_launcher: str = "SEGGER Embedded Studio.cmd"
    state_file: Path = field(default_factory=lambda: get_config_dir() / "state.json")

    @property
    def downloads_dir(self) -> Path:
        return self.install_dir / "downloads"

    def toolchain_url(self, name: str) -> str:
        """Archives live next to the index document."""
        return f"{posixpath.dirname(self.toolchain_index_url)}/{name}"


def _read_json(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text())
    except (OSError, ValueError) as e:
        logger.warning({"event": "config_unreadable", "path": str(path), "error": str(e)})
        return {}
    return data if isinstance(data, dict) else {}


def load_settings(config_file: Optional[Path] = None, **overrides: Any) -> Settings:
    """Build settings from defaults, the settings file, then environment variables."""
    config_file = config_file or get_config_dir() / "settings.json"
    values: Dict[str, Any] = {}

    stored = _read_json(config_file)
    if "install_dir" in stored:
        values["install_dir"] = Path(stored["install_dir"]).expanduser()
    if "toolchain_index_url" in stored:
        values["toolchain_index_url"] = stored["toolchain_index_url"]
    if "network_timeout" in stored:
        values["network_timeout"] = float(stored["network_timeout"])
    if "shell_executable" in stored:
        values["shell_executable"] = stored["shell_executable"]

    if ENV_INSTALL_DIR in os.environ:
        values["install_dir"] = Path(os.environ[ENV_INSTALL_DIR]).expanduser()
    if ENV_INDEX_URL in os.environ:
        values["toolchain_index_url"] = os.environ[ENV_INDEX_URL]
    if ENV_TIMEOUT in os.environ:
        values["network_timeout"] = float(os.environ[ENV_TIMEOUT])

    values.update(overrides)
    settings = replace(Settings(), **values)

    logger.debug(
        {
            "event": "settings_loaded",
            "install_dir": str(settings.install_dir),
            "index_url": settings.toolchain_index_url,
            "timeout": settings.network_timeout,
        }
    )
    return settings


def is_first_install(settings: Settings) -> bool:
    return not _read_json(settings.state_file).get("has_installed_an_ncs", False)


def set_has_installed(settings: Settings) -> None:
    """Remember that at least one environment was installed."""
    state = _read_json(settings.state_file)
    state["has_installed_an_ncs"] = True
    settings.state_file.parent.mkdir(parents=True, exist_ok=True)
    settings.state_file.write_text(json.dumps(state))
