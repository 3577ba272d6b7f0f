"""List Tools / Call Tool semantics and the MCP protocol server built on them."""

from typing import Any, Dict, List, Optional
import json
import traceback

import anyio
import mcp.types as types
from mcp.server.lowlevel import Server
from mcp.shared.exceptions import McpError

from .config import SERVER_NAME
from .registry import ToolRegistry
from .utils import logger


def _error(code: int, message: str, data: Any = None) -> McpError:
    return McpError(types.ErrorData(code=code, message=message, data=data))


class ToolDispatcher:
    """
    Routes protocol requests to tools in a shared registry.

    Stateless apart from the registry, so one instance serves every session.
    """

    def __init__(self, registry: ToolRegistry, timeout: Optional[float] = None, dev_mode: bool = False):
        self.registry = registry
        self.timeout = timeout
        self.dev_mode = dev_mode

    def list_tools(self) -> List[types.Tool]:
        return [tool.to_tool() for tool in self.registry]

    async def call_tool(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> types.CallToolResult:
        """
        Invoke a tool by exact name.

        Raises:
            McpError: METHOD_NOT_FOUND for an unknown tool, INVALID_PARAMS for
                a missing required argument, INTERNAL_ERROR when the handler
                raises or exceeds the timeout
        """
        tool = self.registry.get(name)
        if tool is None:
            raise _error(types.METHOD_NOT_FOUND, f"Unknown tool: {name}")

        arguments = arguments if arguments is not None else {}
        for param in tool.required:
            if param not in arguments:
                raise _error(types.INVALID_PARAMS, f"Missing required parameter: {param}")

        logger.debug(f"Calling tool {name} with keys {sorted(arguments)}")
        result = None
        try:
            with anyio.move_on_after(self.timeout) as scope:
                result = await tool(arguments)
        except McpError:
            raise
        except Exception as e:
            logger.error(f"[Tool Error] {name}: {e}", exc_info=True)
            data = {"traceback": traceback.format_exc()} if self.dev_mode else None
            raise _error(types.INTERNAL_ERROR, f"Tool execution failed: {e}", data)

        # Only the deadline set above counts as a timeout; a TimeoutError
        # raised by the handler is an ordinary failure.
        if scope.cancelled_caught:
            logger.error(f"[Tool Timeout] {name} exceeded {self.timeout}s")
            raise _error(
                types.INTERNAL_ERROR,
                f"Tool execution timed out after {self.timeout:g}s",
                {"type": "timeout", "tool": name},
            )

        text = json.dumps(result, indent=2, default=str)
        return types.CallToolResult(content=[types.TextContent(type="text", text=text)])


def build_protocol_server(dispatcher: ToolDispatcher, name: str = SERVER_NAME) -> Server:
    """Create a fresh MCP server whose tool handlers delegate to the dispatcher."""
    from .. import __version__

    server = Server(name, version=__version__)

    async def handle_list_tools(request: types.ListToolsRequest) -> types.ServerResult:
        return types.ServerResult(types.ListToolsResult(tools=dispatcher.list_tools()))

    async def handle_call_tool(request: types.CallToolRequest) -> types.ServerResult:
        result = await dispatcher.call_tool(request.params.name, request.params.arguments)
        return types.ServerResult(result)

    # Registered directly rather than through the call_tool() decorator so that
    # McpError surfaces as a JSON-RPC error instead of an isError result.
    server.request_handlers[types.ListToolsRequest] = handle_list_tools
    server.request_handlers[types.CallToolRequest] = handle_call_tool
    return server


class ProtocolServer:
    """One MCP server instance and the lifetime of its serve loop."""

    def __init__(self, server: Server):
        self.server = server
        self._scope: Optional[anyio.CancelScope] = None
        self._done: Optional[anyio.Event] = None
        self._closed = False

    @property
    def running(self) -> bool:
        return self._done is not None and not self._done.is_set()

    async def serve(self, read_stream, write_stream) -> None:
        """Run the server over a pair of message streams until they close or close() is called."""
        if self._closed:
            return
        self._done = anyio.Event()
        try:
            with anyio.CancelScope() as scope:
                self._scope = scope
                await self.server.run(read_stream, write_stream, self.server.create_initialization_options())
        finally:
            self._scope = None
            self._done.set()

    async def close(self) -> None:
        """Stop serving and wait until the serve loop has exited."""
        self._closed = True
        if self._scope is not None:
            self._scope.cancel()
        if self._done is not None:
            await self._done.wait()
