"""Utility functions for the Facebook Marketing MCP server."""

from typing import Any, Dict, Optional
import asyncio
import datetime
import logging
import os
import pathlib
import platform
import sys

import httpx

LOGGER_NAME = "fb-marketing-mcp"
USER_AGENT = "fb-marketing-mcp/1.0"
LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def get_config_dir() -> pathlib.Path:
    """Get the platform-specific directory for logs and local state."""
    if platform.system() == "Windows":
        base_path = pathlib.Path(os.environ.get("APPDATA", ""))
    elif platform.system() == "Darwin":  # macOS
        base_path = pathlib.Path.home() / "Library" / "Application Support"
    else:  # Assume Linux/Unix
        base_path = pathlib.Path.home() / ".config"
    return base_path / LOGGER_NAME


def setup_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> logging.Logger:
    """
    Set up logging to a debug file plus stderr.

    Nothing is ever written to stdout: in stdio mode stdout carries the
    protocol stream.

    Args:
        level: Level for the stderr handler (defaults to LOG_LEVEL or WARNING)
        log_file: Path of the debug log file (defaults to LOG_FILE or the config dir)
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    stderr_handler = logging.StreamHandler(sys.stderr)
    requested_level = (level or os.environ.get("LOG_LEVEL") or "WARNING").upper()
    stderr_level = requested_level if requested_level in LOG_LEVELS else "WARNING"
    stderr_handler.setLevel(stderr_level)
    stderr_handler.setFormatter(formatter)
    logger.addHandler(stderr_handler)

    log_path = log_file or os.environ.get("LOG_FILE")
    try:
        if not log_path:
            log_dir = get_config_dir()
            log_dir.mkdir(parents=True, exist_ok=True)
            log_path = str(log_dir / "fb_marketing_mcp.log")
        file_handler = logging.FileHandler(log_path, mode="a")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
        logger.info(f"Logging initialized. Log file: {log_path}")
    except OSError as e:
        logger.warning(f"Could not open log file {log_path}: {e}")

    if stderr_level != requested_level:
        logger.warning(f"Unknown log level {requested_level!r}, using WARNING")
    logger.info(f"Platform: {platform.system()} {platform.release()}")
    return logger


# Create the logger instance to be imported by other modules
logger = setup_logging()


def log_uncaught_exception(exc_type, exc_value, exc_traceback) -> None:
    """sys.excepthook replacement that routes crashes through the logger."""
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_traceback)
        return
    logger.critical("Uncaught exception", exc_info=(exc_type, exc_value, exc_traceback))


def log_loop_exception(loop: asyncio.AbstractEventLoop, context: Dict[str, Any]) -> None:
    """asyncio exception handler for failures nobody awaited."""
    exception = context.get("exception")
    message = context.get("message", "Unhandled exception in event loop")
    if exception is not None:
        logger.error(f"Unhandled async error: {message}", exc_info=exception)
    else:
        logger.error(f"Unhandled async error: {message}")


def install_exception_logging(loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
    """Log process-wide uncaught exceptions instead of dying silently."""
    sys.excepthook = log_uncaught_exception
    if loop is not None:
        loop.set_exception_handler(log_loop_exception)


def create_http_client(timeout: float = 30.0) -> httpx.AsyncClient:
    """Create the HTTP client used for outbound calls."""
    return httpx.AsyncClient(timeout=timeout, headers={"User-Agent": USER_AGENT})


def mask_token(token: Optional[str]) -> str:
    """Shorten a credential so it can be logged."""
    if not token:
        return "None"
    if len(token) <= 15:
        return "***"
    return token[:10] + "..." + token[-5:]


def utc_timestamp() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


def normalize_account_id(account_id: Any) -> str:
    """Strip whitespace and any 'act_' prefix from an ad account id."""
    account_id = str(account_id).strip()
    if account_id.startswith("act_"):
        account_id = account_id[len("act_"):]
    return account_id


def dollars_to_cents(amount: Any) -> str:
    """Convert a budget in account currency units to the minor units the Graph API expects."""
    try:
        return str(int(round(float(amount) * 100)))
    except (TypeError, ValueError):
        raise ValueError(f"Invalid amount: {amount!r}")


def compact(params: Dict[str, Any]) -> Dict[str, Any]:
    """Drop None, blank strings and empty lists from a parameter dict."""
    cleaned = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        if isinstance(value, (list, dict)) and not value:
            continue
        cleaned[key] = value
    return cleaned
