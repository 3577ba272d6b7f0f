import json

import anyio
import pytest
import mcp.types as types
from mcp.shared.message import SessionMessage

from fb_marketing_mcp.core.connection import ConnectionToken
from fb_marketing_mcp.core.dispatch import ProtocolServer, ToolDispatcher, build_protocol_server
from fb_marketing_mcp.core.registry import ToolRegistry
from fb_marketing_mcp.core.sessions import SessionRegistry, SseSessionTransport

from conftest import make_tool

pytestmark = pytest.mark.anyio


async def echo(arguments):
    return {"echo": arguments.get("msg")}


def make_sessions():
    dispatcher = ToolDispatcher(ToolRegistry([make_tool("echo", echo)]))
    return SessionRegistry(lambda: ProtocolServer(build_protocol_server(dispatcher)), message_path="/messages")


def request(request_id, method, params=None):
    payload = {"jsonrpc": "2.0", "id": request_id, "method": method}
    if params is not None:
        payload["params"] = params
    return SessionMessage(types.JSONRPCMessage.model_validate(payload))


def notification(method):
    return SessionMessage(types.JSONRPCMessage.model_validate({"jsonrpc": "2.0", "method": method}))


INITIALIZE = {
    "protocolVersion": types.LATEST_PROTOCOL_VERSION,
    "capabilities": {},
    "clientInfo": {"name": "test-client", "version": "1.0"},
}


async def test_open_and_close_many_sessions_leaves_registry_empty():
    sessions = make_sessions()
    opened = [sessions.open(ConnectionToken(f"srv{i}", "tok")) for i in range(20)]

    assert len(sessions) == 20
    assert len({s.session_id for s in opened}) == 20

    async with anyio.create_task_group() as tg:
        for session in opened:
            tg.start_soon(sessions.close, session.session_id)

    assert len(sessions) == 0
    assert sessions.session_ids() == []


async def test_sequential_cycles_do_not_leak():
    sessions = make_sessions()
    for _ in range(10):
        session = sessions.open()
        assert session.session_id in sessions
        assert await sessions.close(session.session_id) is True
    assert len(sessions) == 0


async def test_close_unknown_session_is_a_noop():
    sessions = make_sessions()
    assert await sessions.close("nope") is False
    assert sessions.get(None) is None
    assert sessions.get("") is None


async def test_endpoint_uri_carries_session_id():
    transport = SseSessionTransport("abc123", "/messages")
    assert transport.endpoint_uri == "/messages?sessionId=abc123"
    await transport.aclose()


async def test_deliver_after_close_reports_closed():
    sessions = make_sessions()
    session = sessions.open()
    transport = session.transport
    await sessions.close(session.session_id)
    assert await transport.deliver(notification("notifications/initialized")) is False


async def test_session_round_trip_and_teardown_order():
    sessions = make_sessions()
    session = sessions.open(ConnectionToken("srv1", "tok1"))
    events = []

    async def emit(event, data):
        events.append((event, data))

    async with anyio.create_task_group() as tg:
        tg.start_soon(session.serve)
        tg.start_soon(session.transport.stream_events, emit)

        await session.transport.deliver(request(1, "initialize", INITIALIZE))
        await session.transport.deliver(notification("notifications/initialized"))
        await session.transport.deliver(request(2, "tools/call", {"name": "echo", "arguments": {"msg": "hi"}}))

        with anyio.fail_after(5):
            while len(events) < 3:
                await anyio.sleep(0.01)

        assert session.protocol_server.running
        await sessions.close(session.session_id)
        assert not session.protocol_server.running
        assert session.session_id not in sessions

    assert events[0] == ("endpoint", f"/messages?sessionId={session.session_id}")
    assert [name for name, _ in events[1:]] == ["message", "message"]
    call_response = json.loads(events[2][1])
    assert call_response["id"] == 2
    assert json.loads(call_response["result"]["content"][0]["text"]) == {"echo": "hi"}


async def test_close_all_tears_down_every_session():
    sessions = make_sessions()
    for _ in range(3):
        sessions.open()
    await sessions.close_all()
    assert len(sessions) == 0


async def test_failure_produces_error_event():
    transport = SseSessionTransport("s1", "/messages")
    events = []

    async def emit(event, data):
        events.append((event, data))

    await transport.finish(failure="server blew up")
    await transport.stream_events(emit)

    assert [name for name, _ in events] == ["endpoint", "error"]
    payload = json.loads(events[1][1])
    assert payload["error"] == "server blew up"
    assert "timestamp" in payload
    await transport.aclose()


async def test_event_stream_ends_quietly_when_registry_closed_it():
    sessions = make_sessions()
    session = sessions.open()
    events = []

    async def emit(event, data):
        events.append((event, data))

    await sessions.close_all()
    with anyio.fail_after(5):
        await session.transport.stream_events(emit)

    assert [name for name, _ in events] == ["endpoint"]
