import json

import anyio
import httpx
import pytest
import mcp.types as types
from starlette.testclient import TestClient

from fb_marketing_mcp.core.config import SERVER_NAME, ServerConfig
from fb_marketing_mcp.core.connection import encode_connection_token
from fb_marketing_mcp.core.dispatch import ToolDispatcher
from fb_marketing_mcp.core.http_app import build_app, format_sse_event, sse_headers
from fb_marketing_mcp.core.registry import ToolRegistry

from conftest import make_tool

ORIGIN = "http://localhost:3000"


async def echo(arguments):
    return {"echo": arguments.get("msg")}


@pytest.fixture
def app():
    dispatcher = ToolDispatcher(ToolRegistry([make_tool("echo", echo)]))
    return build_app(dispatcher, ServerConfig({}))


def test_health_reports_active_sessions(app):
    with TestClient(app) as client:
        app.state.sessions.open()
        response = client.get("/health")

    body = response.json()
    assert response.status_code == 200
    assert body["status"] == "ok"
    assert body["server"] == SERVER_NAME
    assert body["activeSessions"] == 1
    assert "timestamp" in body


def test_shutdown_closes_sessions(app):
    with TestClient(app):
        app.state.sessions.open()
        app.state.sessions.open()
    assert len(app.state.sessions) == 0


@pytest.mark.parametrize("query", ["", "?token=", "?token=c3J2MQ=="])
def test_sse_rejects_bad_token(app, query):
    client = TestClient(app)
    response = client.get(f"/sse{query}", headers={"Origin": ORIGIN})

    assert response.status_code == 400
    body = response.json()
    assert body["error"].startswith("Token validation failed")
    assert body["details"] == "Token validation or server setup failed"
    assert len(app.state.sessions) == 0


def test_sse_rejects_unknown_origin(app):
    client = TestClient(app)
    token = encode_connection_token("srv1", "tok1")
    response = client.get(f"/sse?token={token}", headers={"Origin": "https://evil.example"})
    assert response.status_code == 403
    assert len(app.state.sessions) == 0


def test_preflight_is_answered_for_allowed_origin(app):
    client = TestClient(app)
    response = client.options("/messages", headers={
        "Origin": ORIGIN,
        "Access-Control-Request-Method": "POST",
        "Access-Control-Request-Headers": "Content-Type",
    })
    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == ORIGIN
    assert response.headers["access-control-allow-credentials"] == "true"


def test_post_to_unknown_session_lists_available_sessions(app):
    known = app.state.sessions.open()
    client = TestClient(app)
    response = client.post("/messages?sessionId=nope", json={"jsonrpc": "2.0", "method": "ping", "id": 1})

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "No transport/server found for sessionId"
    assert body["sessionId"] == "nope"
    assert body["availableSessions"] == [known.session_id]


def test_post_without_session_id_is_rejected(app):
    client = TestClient(app)
    response = client.post("/messages", json={"jsonrpc": "2.0", "method": "ping", "id": 1})
    assert response.status_code == 400
    assert response.json()["sessionId"] is None


def test_post_rejects_unparsable_body(app):
    session = app.state.sessions.open()
    client = TestClient(app)
    response = client.post(f"/messages?sessionId={session.session_id}", content=b"{not json")
    assert response.status_code == 400
    assert response.text == "Could not parse message"


def test_post_accepts_message_for_open_session(app):
    session = app.state.sessions.open()
    client = TestClient(app)
    response = client.post(f"/messages?sessionId={session.session_id}",
                           json={"jsonrpc": "2.0", "method": "ping", "id": 1})
    assert response.status_code == 202
    assert response.text == "Accepted"


def test_format_sse_event():
    assert format_sse_event("endpoint", "/messages?sessionId=1") == b"event: endpoint\ndata: /messages?sessionId=1\n\n"


def test_credentials_header_only_with_echoed_origin():
    with_origin = {k.decode(): v.decode() for k, v in sse_headers(ORIGIN)}
    assert with_origin["access-control-allow-origin"] == ORIGIN
    assert with_origin["access-control-allow-credentials"] == "true"

    without_origin = {k.decode(): v.decode() for k, v in sse_headers(None)}
    assert without_origin["access-control-allow-origin"] == "*"
    assert "access-control-allow-credentials" not in without_origin


@pytest.mark.anyio
async def test_sse_stream_serves_session_until_disconnect(app):
    sessions = app.state.sessions
    sent = []
    disconnect = anyio.Event()
    token = encode_connection_token("srv1", "tok1")

    async def receive():
        await disconnect.wait()
        return {"type": "http.disconnect"}

    async def send(message):
        sent.append(message)

    def body_text():
        return b"".join(m.get("body", b"") for m in sent if m["type"] == "http.response.body").decode()

    scope = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": "GET",
        "scheme": "http",
        "path": "/sse",
        "raw_path": b"/sse",
        "root_path": "",
        "query_string": f"token={token}".encode(),
        "headers": [(b"host", b"testserver"), (b"origin", ORIGIN.encode())],
        "client": ("127.0.0.1", 50000),
        "server": ("testserver", 80),
    }

    async with anyio.create_task_group() as tg:
        tg.start_soon(app, scope, receive, send)

        with anyio.fail_after(5):
            while "event: endpoint" not in body_text():
                await anyio.sleep(0.01)

        start = sent[0]
        assert start["type"] == "http.response.start"
        assert start["status"] == 200
        headers = {k.decode(): v.decode() for k, v in start["headers"]}
        assert headers["content-type"].startswith("text/event-stream")
        assert headers["cache-control"] == "no-cache"
        assert headers["x-accel-buffering"] == "no"
        assert headers["access-control-allow-origin"] == ORIGIN

        assert len(sessions) == 1
        session_id = sessions.session_ids()[0]
        assert f"data: /messages?sessionId={session_id}" in body_text()

        initialize = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "initialize",
            "params": {
                "protocolVersion": types.LATEST_PROTOCOL_VERSION,
                "capabilities": {},
                "clientInfo": {"name": "test-client", "version": "1.0"},
            },
        }
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
            response = await client.post(f"/messages?sessionId={session_id}", json=initialize)
        assert response.status_code == 202

        with anyio.fail_after(5):
            while "event: message" not in body_text():
                await anyio.sleep(0.01)

        disconnect.set()

    assert len(sessions) == 0
    message_line = [line for line in body_text().splitlines() if line.startswith("data: {")][0]
    payload = json.loads(message_line[len("data: "):])
    assert payload["id"] == 1
    assert payload["result"]["serverInfo"]["name"] == SERVER_NAME
