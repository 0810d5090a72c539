"""Error types for the toolchain manager."""

import logging
from typing import Any, Dict, Optional

from mcp_toolchain_manager.logging import log_with_data


def log_error(
    error: Exception,
    context: Optional[Dict[str, Any]] = None,
    logger: Optional[logging.Logger] = None,
) -> None:
    """Log an error with context."""
    logger = logger or logging.getLogger("mcp_toolchain_manager.errors")

    error_info: Dict[str, Any] = {
        "error_type": error.__class__.__name__,
        "error_message": str(error),
    }
    if context:
        error_info["context"] = context
    if isinstance(error, ToolchainManagerError):
        error_info["details"] = error.details

    log_with_data(logger, logging.ERROR, "Toolchain manager error occurred", error_info)


class ToolchainManagerError(Exception):
    """Base error class for the toolchain manager."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class InvalidRecord(ToolchainManagerError):
    """A missing or malformed environment/toolchain record was supplied."""


class EnvironmentNotFound(InvalidRecord):
    def __init__(self, version: str):
        super().__init__(
            f"No environment version found for {version}",
            details={"version": version},
        )


class ToolchainNotFound(InvalidRecord):
    def __init__(self, version: str, toolchain_version: Optional[str] = None):
        if toolchain_version:
            message = f"Toolchain {toolchain_version} not available for {version}"
        else:
            message = f"No toolchains available for {version}"
        super().__init__(
            message,
            details={"version": version, "toolchain_version": toolchain_version},
        )


class DirectoryNotFound(ToolchainManagerError):
    def __init__(self, path: Any):
        super().__init__(
            f"Install directory {path} does not exist", details={"path": str(path)}
        )


class ManifestFetchError(ToolchainManagerError):
    def __init__(self, url: str, status: Optional[int] = None, reason: str = ""):
        if status is not None:
            message = f"Unable to download {url}. Got status code {status}"
        else:
            message = f"Unable to download {url}: {reason}"
        super().__init__(message, details={"url": url, "status": status})
        self.url = url
        self.status = status


class ManifestParseError(ToolchainManagerError):
    def __init__(self, url: str, reason: str):
        super().__init__(
            f"Invalid toolchain index {url}: {reason}",
            details={"url": url, "reason": reason},
        )


class DownloadError(ToolchainManagerError):
    def __init__(self, url: str, reason: str):
        super().__init__(
            f"Unable to download {url}: {reason}", details={"url": url}
        )
        self.url = url


class ChecksumMismatch(ToolchainManagerError):
    def __init__(self, url: str, expected: str, actual: str):
        super().__init__(
            f"Checksum verification failed {url}",
            details={"url": url, "expected": expected, "actual": actual},
        )
        self.url = url


class ExtractError(ToolchainManagerError):
    def __init__(self, archive: Any, reason: str):
        super().__init__(
            f"Failed to extract {archive}: {reason}",
            details={"archive": str(archive)},
        )


class ExternalToolError(ToolchainManagerError):
    def __init__(self, message: str, returncode: Optional[int] = None, stderr: str = ""):
        super().__init__(
            message, details={"returncode": returncode, "stderr": stderr}
        )
        self.returncode = returncode


class RemoveError(ToolchainManagerError):
    """Removal failed; the message is suitable for an error dialog."""


class OperationInProgress(ToolchainManagerError):
    def __init__(self, version: str, active: Optional[str]):
        super().__init__(
            f"Cannot start operation on {version} while {active} is in process",
            details={"version": version, "active": active},
        )
