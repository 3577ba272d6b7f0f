"""Environment-driven configuration for the MCP server and its tools."""

from typing import List, Mapping, Optional
import os

from .utils import logger

SERVER_NAME = "generated-mcp-server"

DEFAULT_ALLOWED_ORIGINS = [
    "http://localhost:3000",
    "https://localhost:3000",
    "http://localhost:5173",
    "https://localhost:5173",
]

DEFAULT_GRAPH_API_VERSION = "v23.0"


def _env_flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


def _env_float(environ: Mapping[str, str], key: str, default: float) -> float:
    raw = environ.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {key}={raw!r}, using {default}")
        return default


def _env_int(environ: Mapping[str, str], key: str, default: int) -> int:
    return int(_env_float(environ, key, default))


class ServerConfig:
    """Configuration snapshot taken from the environment."""

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        environ = os.environ if environ is None else environ

        self.host = environ.get("HOST", "0.0.0.0")
        self.port = _env_int(environ, "PORT", 3001)
        self.sse_path = "/sse"
        self.message_path = "/messages"

        origins = environ.get("ALLOWED_ORIGINS", "")
        self.allowed_origins: List[str] = (
            [o.strip() for o in origins.split(",") if o.strip()] if origins.strip() else list(DEFAULT_ALLOWED_ORIGINS)
        )

        self.graph_api_version = environ.get("FACEBOOK_API_VERSION") or DEFAULT_GRAPH_API_VERSION
        self.access_token = environ.get("FACEBOOK_MARKETING_API_ACCESS_TOKEN") or None

        self.supabase_url = (environ.get("SUPABASE_URL") or "").rstrip("/") or None
        self.supabase_key = environ.get("SUPABASE_SERVICE_ROLE_KEY") or environ.get("SUPABASE_ANON_KEY") or None

        timeout = _env_float(environ, "TOOL_TIMEOUT_SECONDS", 120.0)
        self.tool_timeout: Optional[float] = timeout if timeout > 0 else None
        self.http_timeout = _env_float(environ, "HTTP_TIMEOUT_SECONDS", 30.0)
        self.http_max_retries = max(0, _env_int(environ, "HTTP_MAX_RETRIES", 2))

        self.dev_mode = _env_flag(environ.get("MCP_DEV_MODE"))

    @property
    def graph_api_base(self) -> str:
        return f"https://graph.facebook.com/{self.graph_api_version}"

    @property
    def supabase_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)

    def origin_allowed(self, origin: Optional[str]) -> bool:
        """Requests without an Origin header (curl, native clients) are allowed."""
        if not origin:
            return True
        return "*" in self.allowed_origins or origin in self.allowed_origins


_config: Optional[ServerConfig] = None


def get_config() -> ServerConfig:
    """Return the process-wide configuration, reading the environment on first use."""
    global _config
    if _config is None:
        _config = ServerConfig()
        logger.info(f"Configuration loaded (Graph API {_config.graph_api_version}, port {_config.port})")
        logger.info(f"Env access token present: {'Yes' if _config.access_token else 'No'}")
        logger.info(f"Supabase token lookup configured: {'Yes' if _config.supabase_configured else 'No'}")
    return _config


def reset_config() -> None:
    """Forget the cached configuration so the next get_config() re-reads the environment."""
    global _config
    _config = None
