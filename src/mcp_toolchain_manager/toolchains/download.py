"""Streaming archive download with integrity verification."""

import hashlib
from pathlib import Path
from typing import Optional, Tuple

import aiohttp

from mcp_toolchain_manager.config import Settings
from mcp_toolchain_manager.errors import ChecksumMismatch, DownloadError
from mcp_toolchain_manager.logging import get_logger
from mcp_toolchain_manager.environments.registry import Registry
from mcp_toolchain_manager.types import ProgressAllocation, ToolchainDescriptor

logger = get_logger(__name__)


def report_progress(registry: Registry, version: str, progress: int) -> None:
    """Publish a progress value only when it differs from the current one."""
    registry.update(
        version,
        lambda record: None
        if record is not None and record.progress == progress
        else {"progress": progress},
    )


def download_progress(received: int, total: int, share: int) -> int:
    return min(round(received / total * share), share)


async def download_archive(
    session: aiohttp.ClientSession,
    registry: Registry,
    settings: Settings,
    version: str,
    toolchain: ToolchainDescriptor,
    allocation: ProgressAllocation,
) -> Tuple[Path, str]:
    """Download a toolchain archive into the staging directory.

    Returns the archive path and the hex SHA-512 digest of the received bytes.
    """
    url = settings.toolchain_url(toolchain.name)
    settings.downloads_dir.mkdir(parents=True, exist_ok=True)
    dest = settings.downloads_dir / toolchain.name
    digest = hashlib.sha512()

    logger.info({"event": "download_started", "url": url, "destination": str(dest)})

    try:
        async with session.get(url) as response:
            if response.status != 200:
                raise DownloadError(url, f"got status code {response.status}")

            total = _content_length(response)
            if not total:
                raise DownloadError(url, "server did not report a usable content-length")

            received = 0
            with open(dest, "wb") as f:
                async for chunk in response.content.iter_chunked(settings.chunk_size):
                    f.write(chunk)
                    digest.update(chunk)
                    received += len(chunk)
                    report_progress(
                        registry,
                        version,
                        download_progress(received, total, allocation.download_share),
                    )
    except DownloadError:
        _discard(dest)
        raise
    except (aiohttp.ClientError, OSError) as e:
        _discard(dest)
        logger.error({"event": "download_failed", "url": url, "error": str(e)})
        raise DownloadError(url, str(e)) from e

    logger.info(
        {"event": "download_complete", "url": url, "size": received, "expected_size": total}
    )
    return dest, digest.hexdigest()


def verify_checksum(url: str, archive: Path, expected: Optional[str], actual: str) -> None:
    """Reject the archive unless its digest matches the published SHA-512."""
    if not expected or expected.lower() != actual.lower():
        logger.error(
            {"event": "checksum_mismatch", "url": url, "expected": expected, "computed": actual}
        )
        _discard(archive)
        raise ChecksumMismatch(url, expected or "", actual)

    logger.debug({"event": "checksum_verified", "url": url})


def _content_length(response: aiohttp.ClientResponse) -> Optional[int]:
    try:
        length = int(response.headers.get("content-length", ""))
    except ValueError:
        return None
    return length if length > 0 else None


def _discard(path: Path) -> None:
    if path.exists():
        path.unlink()
