import signal
import sys
from contextlib import asynccontextmanager

import anyio
import pytest
import mcp.types as types
from mcp.shared.message import SessionMessage

from fb_marketing_mcp.core import server
from fb_marketing_mcp.core.config import SERVER_NAME
from fb_marketing_mcp.core.dispatch import ToolDispatcher
from fb_marketing_mcp.core.registry import ToolRegistry

from conftest import make_tool

pytestmark = pytest.mark.anyio


async def echo(arguments):
    return {"echo": arguments.get("msg")}


def message(payload):
    return SessionMessage(types.JSONRPCMessage.model_validate({"jsonrpc": "2.0", **payload}))


class FakeStdio:
    """In-memory stand-in for stdin/stdout."""

    def __init__(self):
        self.to_server, self.server_read = anyio.create_memory_object_stream(10)
        self.server_write, self.from_server = anyio.create_memory_object_stream(10)

    @asynccontextmanager
    async def __call__(self):
        async with self.server_read, self.server_write:
            yield self.server_read, self.server_write

    async def request(self, request_id, method, params=None):
        payload = {"id": request_id, "method": method}
        if params is not None:
            payload["params"] = params
        await self.to_server.send(message(payload))
        with anyio.fail_after(5):
            response = await self.from_server.receive()
        return response.message.root

    async def aclose(self):
        await self.to_server.aclose()
        await self.from_server.aclose()


@pytest.fixture
def stdio(monkeypatch):
    fake = FakeStdio()
    monkeypatch.setattr(server, "stdio_server", fake)
    monkeypatch.setattr(sys, "excepthook", sys.excepthook)
    return fake


@pytest.fixture
def dispatcher():
    return ToolDispatcher(ToolRegistry([make_tool("echo", echo)]))


async def initialize(stdio):
    response = await stdio.request(1, "initialize", {
        "protocolVersion": types.LATEST_PROTOCOL_VERSION,
        "capabilities": {},
        "clientInfo": {"name": "test-client", "version": "1.0"},
    })
    assert response.id == 1
    assert response.result["serverInfo"]["name"] == SERVER_NAME
    await stdio.to_server.send(message({"method": "notifications/initialized"}))


async def test_stdio_serves_tools_until_sigint(stdio, dispatcher):
    finished = anyio.Event()

    async def run():
        await server.run_stdio(dispatcher)
        finished.set()

    async with anyio.create_task_group() as tg:
        tg.start_soon(run)
        await initialize(stdio)

        listed = await stdio.request(2, "tools/list")
        assert [tool["name"] for tool in listed.result["tools"]] == ["echo"]

        signal.raise_signal(signal.SIGINT)
        with anyio.fail_after(5):
            await finished.wait()

    await stdio.aclose()


async def test_stdio_session_ends_when_input_closes(stdio, dispatcher):
    finished = anyio.Event()

    async def run():
        await server.run_stdio(dispatcher)
        finished.set()

    async with anyio.create_task_group() as tg:
        tg.start_soon(run)
        await initialize(stdio)

        await stdio.to_server.aclose()
        with anyio.fail_after(5):
            await finished.wait()

    await stdio.from_server.aclose()
