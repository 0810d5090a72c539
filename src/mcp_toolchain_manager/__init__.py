"""MCP Toolchain Manager package."""

from mcp_toolchain_manager.config import Settings, load_settings
from mcp_toolchain_manager.environments.manager import EnvironmentManager
from mcp_toolchain_manager.environments.registry import Registry
from mcp_toolchain_manager.errors import (
    ChecksumMismatch,
    DirectoryNotFound,
    DownloadError,
    ExternalToolError,
    ExtractError,
    InvalidRecord,
    ManifestFetchError,
    ManifestParseError,
    OperationInProgress,
    RemoveError,
    ToolchainManagerError,
)
from mcp_toolchain_manager.types import EnvironmentRecord, ToolchainDescriptor

__version__ = "0.1.0"

__all__ = [
    # Core types
    "EnvironmentRecord",
    "ToolchainDescriptor",
    "Registry",
    "EnvironmentManager",

    # Configuration
    "Settings",
    "load_settings",

    # Error types
    "ToolchainManagerError",
    "InvalidRecord",
    "DirectoryNotFound",
    "ManifestFetchError",
    "ManifestParseError",
    "DownloadError",
    "ChecksumMismatch",
    "ExtractError",
    "ExternalToolError",
    "RemoveError",
    "OperationInProgress",
]
