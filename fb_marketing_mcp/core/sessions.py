"""Per-connection sessions for the SSE transport."""

from typing import Awaitable, Callable, Dict, List, Optional, Union
from uuid import uuid4
import json
import time

import anyio
from mcp.shared.message import SessionMessage

from .connection import ConnectionToken
from .dispatch import ProtocolServer
from .utils import logger, utc_timestamp

EmitEvent = Callable[[str, str], Awaitable[None]]

# Inbound messages queue up to this many before a POST waits for the server.
INBOUND_BUFFER_SIZE = 32


class SseSessionTransport:
    """
    Message streams between the HTTP layer and one protocol server.

    Inbound messages arrive through deliver() (the companion POST endpoint);
    outbound messages are drained by stream_events() into the event stream.
    """

    def __init__(self, session_id: str, message_path: str):
        self.session_id = session_id
        self.endpoint_uri = f"{message_path}?sessionId={session_id}"
        self.failure: Optional[str] = None
        self._incoming_writer, self.read_stream = anyio.create_memory_object_stream(INBOUND_BUFFER_SIZE)
        self.write_stream, self._outgoing_reader = anyio.create_memory_object_stream(0)

    async def deliver(self, message: Union[SessionMessage, Exception]) -> bool:
        """Queue an inbound message. Returns False when the session is already closed."""
        try:
            await self._incoming_writer.send(message)
            return True
        except (anyio.ClosedResourceError, anyio.BrokenResourceError):
            logger.warning(f"Dropped message for closed session {self.session_id}")
            return False

    async def stream_events(self, emit: EmitEvent) -> None:
        """Emit the endpoint event, every outbound message, and a final error event if serving failed."""
        await emit("endpoint", self.endpoint_uri)
        try:
            async with self._outgoing_reader:
                async for session_message in self._outgoing_reader:
                    await emit("message", session_message.message.model_dump_json(by_alias=True, exclude_none=True))
        except anyio.ClosedResourceError:
            # The session was closed under us (e.g. at shutdown).
            logger.debug(f"Event stream closed for session {self.session_id}")
        if self.failure is not None:
            await emit("error", json.dumps({"error": self.failure, "timestamp": utc_timestamp()}))

    async def finish(self, failure: Optional[str] = None) -> None:
        """Mark the outbound side complete so stream_events() returns."""
        if failure is not None:
            self.failure = failure
        await self.write_stream.aclose()

    async def aclose(self) -> None:
        await self._incoming_writer.aclose()
        await self._outgoing_reader.aclose()


class Session:
    """A live client connection: its transport and its protocol server."""

    def __init__(self, session_id: str, transport: SseSessionTransport, protocol_server: ProtocolServer,
                 credentials: Optional[ConnectionToken] = None):
        self.session_id = session_id
        self.transport = transport
        self.protocol_server = protocol_server
        self.credentials = credentials
        self.created_at = time.time()

    async def serve(self) -> None:
        """Run the protocol server over this session's transport."""
        try:
            await self.protocol_server.serve(self.transport.read_stream, self.transport.write_stream)
        except Exception as e:
            logger.error(f"[MCP Error] session {self.session_id}: {e}", exc_info=True)
            await self.transport.finish(failure=str(e))
        else:
            await self.transport.finish()


class SessionRegistry:
    """
    Owns every live session, keyed by session id.

    A transport and its protocol server are only ever added and removed
    together. All mutation happens on the event loop thread.
    """

    def __init__(self, server_factory: Callable[[], ProtocolServer], message_path: str = "/messages"):
        self._server_factory = server_factory
        self._message_path = message_path
        self._sessions: Dict[str, Session] = {}

    def open(self, credentials: Optional[ConnectionToken] = None) -> Session:
        session_id = uuid4().hex
        while session_id in self._sessions:
            session_id = uuid4().hex
        session = Session(
            session_id,
            SseSessionTransport(session_id, self._message_path),
            self._server_factory(),
            credentials,
        )
        self._sessions[session_id] = session
        logger.info(f"Session opened: {session_id} (server {credentials.server_id if credentials else 'n/a'})")
        return session

    def get(self, session_id: Optional[str]) -> Optional[Session]:
        if not session_id:
            return None
        return self._sessions.get(session_id)

    async def close(self, session_id: str) -> bool:
        """
        Tear a session down: transport first, then the protocol server.

        The entry is removed only after the protocol server has stopped.
        Returns False if the session was not registered.
        """
        session = self._sessions.get(session_id)
        if session is None:
            return False
        await session.transport.aclose()
        await session.protocol_server.close()
        if self._sessions.get(session_id) is session:
            del self._sessions[session_id]
        logger.info(f"Session closed: {session_id} ({len(self._sessions)} active)")
        return True

    async def close_all(self) -> None:
        for session_id in self.session_ids():
            await self.close(session_id)

    def session_ids(self) -> List[str]:
        return list(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
