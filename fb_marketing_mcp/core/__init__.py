"""Core functionality for the Facebook Marketing MCP package."""

from .api import GraphAPIError, graph_api_tool, make_api_request
from .auth import AccessTokenError, resolve_access_token
from .config import ServerConfig, get_config
from .connection import ConnectionToken, InvalidConnectionToken, decode_connection_token, encode_connection_token
from .dispatch import ProtocolServer, ToolDispatcher, build_protocol_server
from .http_app import build_app
from .registry import DuplicateToolError, ToolDescriptor, ToolRegistry, discover_tools
from .server import main
from .sessions import SessionRegistry

__all__ = [
    'AccessTokenError',
    'ConnectionToken',
    'DuplicateToolError',
    'GraphAPIError',
    'InvalidConnectionToken',
    'ProtocolServer',
    'ServerConfig',
    'SessionRegistry',
    'ToolDescriptor',
    'ToolDispatcher',
    'ToolRegistry',
    'build_app',
    'build_protocol_server',
    'decode_connection_token',
    'discover_tools',
    'encode_connection_token',
    'get_config',
    'graph_api_tool',
    'main',
    'make_api_request',
    'resolve_access_token',
]
