import os
import tempfile
from typing import Any, Callable, Dict, List

import httpx
import pytest

# Keep test runs out of the user's config directory
os.environ.setdefault("LOG_FILE", os.path.join(tempfile.gettempdir(), "fb_marketing_mcp_tests.log"))

from fb_marketing_mcp.core import api, auth, config
from fb_marketing_mcp.core.registry import ToolDescriptor

ENV_KEYS = [
    "FACEBOOK_MARKETING_API_ACCESS_TOKEN",
    "SUPABASE_URL",
    "SUPABASE_SERVICE_ROLE_KEY",
    "SUPABASE_ANON_KEY",
    "ALLOWED_ORIGINS",
    "TOOL_TIMEOUT_SECONDS",
    "HTTP_MAX_RETRIES",
    "MCP_DEV_MODE",
    "FACEBOOK_API_VERSION",
]


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Every test starts from an empty, uncached configuration."""
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setattr(api, "RETRY_BACKOFF_SECONDS", 0)
    config.reset_config()
    yield
    config.reset_config()


class GraphRecorder:
    """Routes outbound HTTP calls to a handler and records every request."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.handler = handler
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    def client(self, timeout: float = 30.0) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self), timeout=timeout)


@pytest.fixture
def mock_http(monkeypatch):
    """Install a MockTransport-backed client for Graph API and Supabase calls."""
    def install(handler: Callable[[httpx.Request], httpx.Response]) -> GraphRecorder:
        recorder = GraphRecorder(handler)
        monkeypatch.setattr(api, "create_http_client", recorder.client)
        monkeypatch.setattr(auth, "create_http_client", recorder.client)
        return recorder
    return install


def make_tool(name: str, handler, required: List[str] = (), properties: Dict[str, Any] = None) -> ToolDescriptor:
    properties = properties or {key: {"type": "string"} for key in required}
    return ToolDescriptor(
        name=name,
        description=f"{name} test tool",
        parameters={"type": "object", "properties": properties, "required": list(required)},
        handler=handler,
    )
