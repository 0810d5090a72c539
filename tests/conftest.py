import hashlib
import io
import zipfile
from pathlib import Path
from typing import Dict

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from mcp_toolchain_manager.config import Settings
from mcp_toolchain_manager.environments.registry import Registry


def make_zip(files: Dict[str, bytes]) -> bytes:
    """Build an in-memory zip archive"""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, content in files.items():
            zf.writestr(name, content)
    return buffer.getvalue()


TOOLCHAIN_FILES = {
    "ncsmgr/manifest.env": b"NCS_VERSION=1.2.0\n",
    "ncsmgr/ncsmgr": b"#!/bin/sh\n",
    "bin/arm-none-eabi-gcc": b"gcc",
    "git-bash.exe": b"bash",
}


@pytest.fixture
def toolchain_zip() -> bytes:
    return make_zip(TOOLCHAIN_FILES)


@pytest.fixture
def registry() -> Registry:
    return Registry()


@pytest.fixture
def install_dir(tmp_path: Path) -> Path:
    path = tmp_path / "ncs"
    path.mkdir()
    return path


@pytest.fixture
def settings(tmp_path: Path, install_dir: Path) -> Settings:
    return Settings(
        install_dir=install_dir,
        toolchain_index_url="http://127.0.0.1:1/toolchain/index.json",
        network_timeout=5.0,
        chunk_size=64,
        state_file=tmp_path / "state.json",
    )


@pytest_asyncio.fixture
async def toolchain_server(toolchain_zip: bytes):
    """Local HTTP server publishing an index and one toolchain archive"""
    state = {
        "index": [
            {
                "version": "1.2.0",
                "toolchains": [
                    {
                        "version": "1",
                        "name": "ncs-toolchain-1.2.0.zip",
                        "sha512": hashlib.sha512(toolchain_zip).hexdigest(),
                    }
                ],
            }
        ],
        "archives": {"ncs-toolchain-1.2.0.zip": toolchain_zip},
        "index_status": 200,
        "requests": [],
    }

    async def index(request: web.Request) -> web.Response:
        state["requests"].append(request.headers.get("pragma"))
        return web.json_response(state["index"], status=state["index_status"])

    async def archive(request: web.Request) -> web.Response:
        body = state["archives"].get(request.match_info["name"])
        if body is None:
            return web.Response(status=404)
        return web.Response(body=body, content_type="application/zip")

    app = web.Application()
    app.router.add_get("/toolchain/index.json", index)
    app.router.add_get("/toolchain/{name}", archive)

    server = TestServer(app)
    await server.start_server()
    state["index_url"] = str(server.make_url("/toolchain/index.json"))
    try:
        yield state
    finally:
        await server.close()


@pytest.fixture
def served_settings(settings: Settings, toolchain_server) -> Settings:
    return Settings(
        install_dir=settings.install_dir,
        toolchain_index_url=toolchain_server["index_url"],
        network_timeout=settings.network_timeout,
        chunk_size=settings.chunk_size,
        state_file=settings.state_file,
    )
