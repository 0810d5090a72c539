"""Remote toolchain index retrieval."""

import asyncio
import json
from typing import Any, Dict, List, Optional

import aiohttp

from mcp_toolchain_manager.config import Settings
from mcp_toolchain_manager.errors import ManifestFetchError, ManifestParseError
from mcp_toolchain_manager.logging import get_logger
from mcp_toolchain_manager.environments.registry import Registry
from mcp_toolchain_manager.versions import sort_newest_first

logger = get_logger(__name__)

NO_CACHE_HEADERS = {"pragma": "no-cache"}


def client_timeout(settings: Settings) -> aiohttp.ClientTimeout:
    """Bounded connect/read timeout; total stays open for large archives."""
    return aiohttp.ClientTimeout(
        total=None,
        sock_connect=settings.network_timeout,
        sock_read=settings.network_timeout,
    )


def parse_manifest(url: str, body: str) -> List[Dict[str, Any]]:
    """Parse and validate the index document."""
    try:
        data = json.loads(body)
    except ValueError as e:
        raise ManifestParseError(url, f"not valid JSON ({e})") from e

    if not isinstance(data, list):
        raise ManifestParseError(url, "expected a list of environments")

    for environment in data:
        if not isinstance(environment, dict) or not isinstance(environment.get("version"), str):
            raise ManifestParseError(url, f"environment without version: {environment!r}")
        toolchains = environment.get("toolchains", [])
        if not isinstance(toolchains, list):
            raise ManifestParseError(url, f"toolchains of {environment['version']} is not a list")
        for toolchain in toolchains:
            if not isinstance(toolchain, dict) or not all(
                isinstance(toolchain.get(key), str) for key in ("version", "name", "sha512")
            ):
                raise ManifestParseError(url, f"malformed toolchain: {toolchain!r}")

    return data


async def fetch_manifest(session: aiohttp.ClientSession, url: str) -> List[Dict[str, Any]]:
    """GET the index and return its validated environment descriptors."""
    logger.debug({"event": "fetching_manifest", "url": url})
    try:
        async with session.get(url, headers=NO_CACHE_HEADERS) as response:
            if response.status != 200:
                logger.error(
                    {"event": "manifest_fetch_failed", "url": url, "status": response.status}
                )
                raise ManifestFetchError(url, response.status)
            body = await response.text()
    except aiohttp.ClientError as e:
        raise ManifestFetchError(url, reason=str(e)) from e
    except asyncio.TimeoutError as e:
        raise ManifestFetchError(url, reason="timed out") from e

    return parse_manifest(url, body)


async def download_index(
    registry: Registry,
    settings: Settings,
    session: Optional[aiohttp.ClientSession] = None,
) -> List[Dict[str, Any]]:
    """Fetch the remote index and merge it into the registry."""
    url = settings.toolchain_index_url

    if session is None:
        async with aiohttp.ClientSession(timeout=client_timeout(settings)) as own_session:
            environments = await fetch_manifest(own_session, url)
    else:
        environments = await fetch_manifest(session, url)

    for environment in sort_newest_first(environments, key=lambda e: e["version"]):
        registry.upsert({"version": environment["version"]})
        for toolchain in sorted(environment.get("toolchains", []), key=lambda t: t["name"]):
            registry.upsert_toolchain(environment["version"], toolchain)

    logger.info({"event": "manifest_merged", "url": url, "environments": len(environments)})
    return environments
