"""Process entry points: stdio and SSE transports."""

from typing import Optional, Sequence
import argparse
import asyncio
import signal
import sys

import anyio
from dotenv import load_dotenv
from mcp.server.stdio import stdio_server
import uvicorn

from .config import SERVER_NAME, ServerConfig, get_config, reset_config
from .dispatch import ProtocolServer, ToolDispatcher, build_protocol_server
from .http_app import build_app
from .registry import discover_tools
from .utils import LOG_LEVELS, install_exception_logging, logger, setup_logging


def create_dispatcher(config: Optional[ServerConfig] = None) -> ToolDispatcher:
    """Discover the tool modules and wrap them in a dispatcher."""
    config = config or get_config()
    registry = discover_tools()
    logger.info(f"Loaded tools: {registry.names()}")
    return ToolDispatcher(registry, timeout=config.tool_timeout, dev_mode=config.dev_mode)


async def run_stdio(dispatcher: ToolDispatcher) -> None:
    """
    Serve a single session over stdin/stdout.

    SIGINT and SIGTERM close the protocol server before the process exits.
    """
    install_exception_logging(asyncio.get_running_loop())
    protocol_server = ProtocolServer(build_protocol_server(dispatcher))

    async with stdio_server() as (read_stream, write_stream):
        async with anyio.create_task_group() as tg:

            async def close_on_signal() -> None:
                with anyio.open_signal_receiver(signal.SIGINT, signal.SIGTERM) as signals:
                    async for signum in signals:
                        logger.info(f"Received {signal.Signals(signum).name}, shutting down")
                        await protocol_server.close()
                        tg.cancel_scope.cancel()
                        return

            tg.start_soon(close_on_signal)
            logger.info(f"{SERVER_NAME} running on stdio")
            await protocol_server.serve(read_stream, write_stream)
            tg.cancel_scope.cancel()

    logger.info("stdio session closed")


def run_sse(dispatcher: ToolDispatcher, config: ServerConfig, log_level: str = "info") -> None:
    app = build_app(dispatcher, config)
    logger.info(f"[SSE Server] {SERVER_NAME} listening on http://{config.host}:{config.port}{config.sse_path}")
    uvicorn.run(
        app,
        host=config.host,
        port=config.port,
        log_level=log_level.lower(),
        timeout_graceful_shutdown=5,
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point for the package"""
    load_dotenv()
    reset_config()

    parser = argparse.ArgumentParser(description="Facebook Marketing MCP Server")
    parser.add_argument("--sse", action="store_true", help="Serve over SSE instead of stdio")
    parser.add_argument("--host", type=str, help="Host to bind in SSE mode (default: HOST or 0.0.0.0)")
    parser.add_argument("--port", type=int, help="Port to bind in SSE mode (default: PORT or 3001)")
    parser.add_argument("--log-level", type=str.upper, choices=LOG_LEVELS, help="Level for log output on stderr (default: LOG_LEVEL or WARNING)")
    parser.add_argument("--version", action="store_true", help="Show the version of the package")
    args = parser.parse_args(argv)

    if args.version:
        from fb_marketing_mcp import __version__
        print(f"Facebook Marketing MCP v{__version__}")
        return 0

    setup_logging(level=args.log_level)
    install_exception_logging()
    logger.info("Facebook Marketing MCP server starting")
    logger.info(f"Python version: {sys.version}")
    logger.info(f"Args: sse={args.sse}, host={args.host}, port={args.port}")

    config = get_config()
    if args.host:
        config.host = args.host
    if args.port:
        config.port = args.port

    dispatcher = create_dispatcher(config)
    if not len(dispatcher.registry):
        logger.error("No tools could be loaded; serving an empty tool list")

    if args.sse:
        run_sse(dispatcher, config, log_level=args.log_level or "info")
    else:
        anyio.run(run_stdio, dispatcher)
    logger.info("Facebook Marketing MCP server stopped")
    return 0
