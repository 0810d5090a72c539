"""MCP server implementation."""
import asyncio
import json
from typing import Any, Dict, List, Optional

import mcp.types as types
from mcp.server.lowlevel import Server
from mcp.server.models import InitializationOptions
from mcp.server import stdio

from mcp_toolchain_manager.environments.manager import EnvironmentManager
from mcp_toolchain_manager.errors import ToolchainManagerError, log_error
from mcp_toolchain_manager.logging import configure_logging, get_logger

logger = get_logger("server")

SERVER_NAME = "mcp-toolchain-manager"
SERVER_VERSION = "0.1.0"

VERSION_ARG = {
    "type": "object",
    "properties": {
        "version": {"type": "string", "description": "SDK environment version"}
    },
    "required": ["version"],
}

OPEN_TARGETS = ["folder", "toolchain_folder", "terminal", "ide"]

tools = [
    types.Tool(
        name="toolchain_initialize",
        description="Scan the install directory and fetch the remote toolchain index",
        inputSchema={"type": "object", "properties": {}},
    ),
    types.Tool(
        name="toolchain_list",
        description="List known SDK environments with their install state",
        inputSchema={"type": "object", "properties": {}},
    ),
    types.Tool(
        name="toolchain_install",
        description="Download, verify and extract a toolchain, then clone the SDK",
        inputSchema={
            "type": "object",
            "properties": {
                "version": {"type": "string", "description": "SDK environment version"},
                "toolchain_version": {
                    "type": "string",
                    "description": "Toolchain version, defaults to the latest",
                },
                "clone": {
                    "type": "boolean",
                    "description": "Clone the SDK after extracting the toolchain",
                },
            },
            "required": ["version"],
        },
    ),
    types.Tool(
        name="toolchain_clone_sdk",
        description="Clone or update the SDK of an installed environment",
        inputSchema=VERSION_ARG,
    ),
    types.Tool(
        name="toolchain_remove",
        description="Remove an environment's toolchain and SDK",
        inputSchema=VERSION_ARG,
    ),
    types.Tool(
        name="toolchain_remove_toolchain",
        description="Remove only the toolchain of an environment",
        inputSchema=VERSION_ARG,
    ),
    types.Tool(
        name="toolchain_open",
        description="Open an installed environment's folder, terminal or IDE",
        inputSchema={
            "type": "object",
            "properties": {
                "version": {"type": "string", "description": "SDK environment version"},
                "target": {"type": "string", "enum": OPEN_TARGETS},
            },
            "required": ["version", "target"],
        },
    ),
]


def _result(success: bool, payload: Any) -> List[types.TextContent]:
    key = "data" if success else "error"
    return [types.TextContent(type="text", text=json.dumps({"success": success, key: payload}))]


async def handle_tool_call(
    manager: EnvironmentManager, name: str, arguments: Dict[str, Any]
) -> List[types.TextContent]:
    """Dispatch one tool call against the manager."""
    try:
        logger.debug(f"Tool call received: {name} with arguments {arguments}")

        if name == "toolchain_initialize":
            await manager.initialize()
            return _result(True, manager.state())

        elif name == "toolchain_list":
            return _result(True, manager.state())

        elif name == "toolchain_install":
            record = await manager.install(
                arguments["version"],
                toolchain_version=arguments.get("toolchain_version"),
                clone=arguments.get("clone", True),
            )
            return _result(True, record.to_dict())

        elif name == "toolchain_clone_sdk":
            record = await manager.clone(arguments["version"])
            return _result(True, record.to_dict())

        elif name in ("toolchain_remove", "toolchain_remove_toolchain"):
            remove = manager.remove if name == "toolchain_remove" else manager.remove_toolchain
            if await remove(arguments["version"]):
                return _result(True, manager.state())
            message = manager.error_dialog
            manager.dismiss_error_dialog()
            return _result(False, message)

        elif name == "toolchain_open":
            openers = {
                "folder": manager.open_folder,
                "toolchain_folder": manager.open_toolchain_folder,
                "terminal": manager.open_terminal,
                "ide": manager.open_ide,
            }
            opener = openers.get(arguments["target"])
            if opener is None:
                return _result(False, f"Unknown target: {arguments['target']}")
            pid = await opener(arguments["version"])
            return _result(True, {"pid": pid})

        return _result(False, f"Unknown tool: {name}")

    except KeyError as e:
        return _result(False, f"Missing argument: {e.args[0]}")
    except ToolchainManagerError as e:
        log_error(e, {"tool": name, "arguments": arguments}, logger)
        return _result(False, str(e))


async def init_server(manager: Optional[EnvironmentManager] = None) -> Server:
    logger.info(f"Registered tools: {', '.join(t.name for t in tools)}")

    manager = manager or EnvironmentManager()
    server = Server(SERVER_NAME)

    @server.list_tools()
    async def list_tools() -> List[types.Tool]:
        logger.debug("Tools requested")
        return tools

    @server.call_tool()
    async def call_tool(
        name: str, arguments: Dict[str, Any]
    ) -> list[types.TextContent | types.ImageContent | types.EmbeddedResource]:
        return await handle_tool_call(manager, name, arguments or {})

    return server


async def serve() -> None:
    configure_logging()
    logger.info("Starting MCP toolchain manager")
    server = await init_server()
    async with stdio.stdio_server() as (read_stream, write_stream):
        init_options = InitializationOptions(
            server_name=SERVER_NAME,
            server_version=SERVER_VERSION,
            capabilities=types.ServerCapabilities(
                tools=types.ToolsCapability(listChanged=False),
                logging=types.LoggingCapability(),
            ),
        )
        await server.run(read_stream, write_stream, init_options)


def main() -> None:
    """Run the MCP server."""
    asyncio.run(serve())
