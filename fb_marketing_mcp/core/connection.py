"""Connection tokens gating SSE sessions.

A token is ``base64("<serverId>:<accessToken>")``. It is an access gate,
not a signature: anyone able to base64-encode a colon-joined string can
produce one.
"""

from typing import NamedTuple, Optional
import base64
import binascii


class InvalidConnectionToken(ValueError):
    """Raised when a connection token is missing or malformed."""


class ConnectionToken(NamedTuple):
    server_id: str
    access_token: str


def encode_connection_token(server_id: str, access_token: str) -> str:
    return base64.b64encode(f"{server_id}:{access_token}".encode("utf-8")).decode("ascii")


def decode_connection_token(token: Optional[str]) -> ConnectionToken:
    """
    Decode and validate a connection token.

    Accepts the standard and URL-safe alphabets with or without padding.
    Query-string decoding turns '+' into ' ', so spaces are read back as '+'.
    The decoded string is split on the first ':'; both halves must be non-empty.

    Raises:
        InvalidConnectionToken: if the token is missing, undecodable or incomplete
    """
    if not token or not token.strip():
        raise InvalidConnectionToken("Token validation failed: Token is required")

    raw = token.strip().replace(" ", "+").replace("-", "+").replace("_", "/")
    raw += "=" * (-len(raw) % 4)
    try:
        decoded = base64.b64decode(raw, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        raise InvalidConnectionToken("Token validation failed: Token is not valid base64")

    if ":" not in decoded:
        raise InvalidConnectionToken("Token validation failed: Invalid token format")

    server_id, _, access_token = decoded.partition(":")
    if not server_id or not access_token:
        raise InvalidConnectionToken("Token validation failed: Invalid token components")

    return ConnectionToken(server_id=server_id, access_token=access_token)
