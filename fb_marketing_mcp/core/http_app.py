"""HTTP surface for the SSE transport: event stream, companion POST, health."""

from contextlib import asynccontextmanager
from typing import List, Optional, Tuple
import asyncio

import anyio
from mcp.shared.message import SessionMessage
import mcp.types as types
from pydantic import ValidationError
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route
from starlette.types import Receive, Scope, Send

from .config import SERVER_NAME, ServerConfig, get_config
from .connection import InvalidConnectionToken, decode_connection_token
from .dispatch import ProtocolServer, ToolDispatcher, build_protocol_server
from .sessions import SessionRegistry
from .utils import log_loop_exception, logger, utc_timestamp

ALLOWED_HEADERS = ["Content-Type", "Authorization", "Cache-Control", "X-Requested-With"]


def format_sse_event(event: str, data: str) -> bytes:
    lines = [f"event: {event}"]
    lines.extend(f"data: {line}" for line in data.splitlines() or [""])
    return ("\n".join(lines) + "\n\n").encode("utf-8")


def sse_headers(origin: Optional[str]) -> List[Tuple[bytes, bytes]]:
    headers = {
        "content-type": "text/event-stream",
        "cache-control": "no-cache",
        "connection": "keep-alive",
        "x-accel-buffering": "no",
        "access-control-allow-origin": origin or "*",
    }
    # Browsers reject credentials alongside a wildcard origin.
    if origin:
        headers["access-control-allow-credentials"] = "true"
    return [(k.encode("latin-1"), v.encode("latin-1")) for k, v in headers.items()]


class SseEndpoint:
    """
    ASGI endpoint holding one event stream open per client.

    The response is written by hand so the endpoint can watch for the client
    disconnecting while the protocol server is idle.
    """

    def __init__(self, sessions: SessionRegistry, config: ServerConfig):
        self.sessions = sessions
        self.config = config

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        request = Request(scope, receive)
        origin = request.headers.get("origin")
        logger.info(f"SSE connection attempt from origin {origin or 'n/a'}")

        if not self.config.origin_allowed(origin):
            logger.error(f"Origin {origin} not allowed by CORS")
            response = JSONResponse({"error": f"Origin {origin} not allowed by CORS"}, status_code=403)
            await response(scope, receive, send)
            return

        try:
            credentials = decode_connection_token(request.query_params.get("token"))
        except InvalidConnectionToken as e:
            logger.warning(f"SSE connection rejected: {e}")
            response = JSONResponse(
                {"error": str(e), "details": "Token validation or server setup failed"},
                status_code=400,
            )
            await response(scope, receive, send)
            return

        logger.info(f"Token validated for server: {credentials.server_id}")
        session = self.sessions.open(credentials)
        disconnected = False

        async def emit(event: str, data: str) -> None:
            await send({"type": "http.response.body", "body": format_sse_event(event, data), "more_body": True})

        try:
            await send({"type": "http.response.start", "status": 200, "headers": sse_headers(origin)})
            async with anyio.create_task_group() as tg:

                async def watch_disconnect() -> None:
                    nonlocal disconnected
                    while True:
                        message = await receive()
                        if message["type"] == "http.disconnect":
                            break
                    disconnected = True
                    tg.cancel_scope.cancel()

                tg.start_soon(watch_disconnect)
                tg.start_soon(session.serve)
                logger.info(f"SSE connection established, session: {session.session_id}")
                await session.transport.stream_events(emit)
                tg.cancel_scope.cancel()

            if not disconnected:
                await send({"type": "http.response.body", "body": b"", "more_body": False})
        except OSError:
            logger.info(f"SSE client went away, session: {session.session_id}")
        finally:
            with anyio.CancelScope(shield=True):
                logger.info(f"SSE client disconnected, session: {session.session_id}")
                await self.sessions.close(session.session_id)


def build_app(dispatcher: ToolDispatcher, config: Optional[ServerConfig] = None) -> Starlette:
    """Create the Starlette application serving the SSE transport."""
    config = config or get_config()
    sessions = SessionRegistry(
        server_factory=lambda: ProtocolServer(build_protocol_server(dispatcher)),
        message_path=config.message_path,
    )

    def session_not_found(session_id: Optional[str]) -> Response:
        logger.error(f"No transport/server found for sessionId: {session_id}")
        return JSONResponse(
            {
                "error": "No transport/server found for sessionId",
                "sessionId": session_id,
                "availableSessions": sessions.session_ids(),
            },
            status_code=400,
        )

    async def post_message(request: Request) -> Response:
        session_id = request.query_params.get("sessionId")
        logger.debug(f"POST {config.message_path} for session: {session_id}")

        session = sessions.get(session_id)
        if session is None:
            return session_not_found(session_id)

        body = await request.body()
        try:
            message = types.JSONRPCMessage.model_validate_json(body)
        except ValidationError as e:
            logger.error(f"Could not parse message for session {session_id}: {e}")
            return Response("Could not parse message", status_code=400)

        if not await session.transport.deliver(SessionMessage(message)):
            return session_not_found(session_id)
        return Response("Accepted", status_code=202)

    async def health(request: Request) -> Response:
        return JSONResponse({
            "status": "ok",
            "server": SERVER_NAME,
            "activeSessions": len(sessions),
            "timestamp": utc_timestamp(),
        })

    @asynccontextmanager
    async def lifespan(app: Starlette):
        asyncio.get_running_loop().set_exception_handler(log_loop_exception)
        logger.info(f"[SSE Server] allowed origins: {config.allowed_origins}")
        try:
            yield
        finally:
            await sessions.close_all()

    app = Starlette(
        routes=[
            Route("/health", health, methods=["GET"]),
            Route(config.sse_path, SseEndpoint(sessions, config), methods=["GET"]),
            Route(config.message_path, post_message, methods=["POST"]),
        ],
        middleware=[
            Middleware(
                CORSMiddleware,
                allow_origins=config.allowed_origins,
                allow_methods=["GET", "POST", "OPTIONS"],
                allow_headers=ALLOWED_HEADERS,
                allow_credentials=True,
            ),
        ],
        lifespan=lifespan,
    )
    app.state.sessions = sessions
    app.state.dispatcher = dispatcher
    return app
