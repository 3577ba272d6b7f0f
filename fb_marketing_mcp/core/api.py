"""Core Graph API functionality shared by every tool."""

from typing import Any, Callable, Dict, Optional
import asyncio
import functools
import json

import httpx

from .auth import AccessTokenError, resolve_access_token
from .config import get_config
from .registry import ToolDescriptor
from .utils import create_http_client, logger, mask_token

# Statuses worth retrying for idempotent requests
RETRY_STATUSES = {429, 500, 502, 503, 504}
RETRY_BACKOFF_SECONDS = 0.5

ACCESS_TOKEN_PROPERTY = {
    "type": "string",
    "description": (
        "Override access token (uses FACEBOOK_MARKETING_API_ACCESS_TOKEN, then the token "
        "stored for the ad account's owner, if not provided)."
    ),
}


class GraphAPIError(Exception):
    """Exception raised for errors from the Graph API."""
    def __init__(self, message: str, code: Optional[int] = None, status_code: Optional[int] = None,
                 error_data: Optional[Dict[str, Any]] = None):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.error_data = error_data or {}
        super().__init__(message)

    @classmethod
    def from_response(cls, status_code: int, body: Any) -> "GraphAPIError":
        error = body.get("error") if isinstance(body, dict) else None
        if isinstance(error, dict):
            message = error.get("error_user_msg") or error.get("message") or f"HTTP Error: {status_code}"
            return cls(message, code=error.get("code"), status_code=status_code, error_data=error)
        if isinstance(error, str):
            return cls(error, status_code=status_code, error_data={"message": error})
        return cls(f"HTTP Error: {status_code}", status_code=status_code,
                   error_data=body if isinstance(body, dict) else {"text": str(body)})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "code": self.code,
            "status_code": self.status_code,
            "error_data": self.error_data,
        }


def _prepare_params(params: Dict[str, Any]) -> Dict[str, Any]:
    """Nested values travel as JSON strings, in query strings and form bodies alike."""
    prepared = {}
    for key, value in params.items():
        if isinstance(value, (list, dict)):
            prepared[key] = json.dumps(value)
        elif isinstance(value, bool):
            prepared[key] = "true" if value else "false"
        else:
            prepared[key] = value
    return prepared


def _parse_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return {"text_response": response.text, "status_code": response.status_code}


async def make_api_request(
    endpoint: str,
    access_token: str,
    params: Optional[Dict[str, Any]] = None,
    method: str = "GET",
    files: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Make a request to the Facebook Graph API.

    GET requests are retried on network errors, 429 and 5xx with exponential
    backoff. POST and DELETE are sent once.

    Args:
        endpoint: API endpoint path (without base URL)
        access_token: Graph API access token, sent as a bearer credential
        params: Query parameters (GET, DELETE) or form fields (POST)
        method: HTTP method (GET, POST, DELETE)
        files: Multipart file fields for uploads (POST only)

    Returns:
        API response as a dictionary

    Raises:
        GraphAPIError: if the API answers with an error status or error body
        httpx.HTTPError: if the request could not be completed
    """
    if not access_token:
        raise AccessTokenError("A valid access token is required to access the Graph API")

    config = get_config()
    method = method.upper()
    if method not in ("GET", "POST", "DELETE"):
        raise ValueError(f"Unsupported HTTP method: {method}")

    url = f"{config.graph_api_base}/{endpoint.lstrip('/')}"
    headers = {"Authorization": f"Bearer {access_token}"}
    request_params = _prepare_params(params or {})
    attempts = 1 + (config.http_max_retries if method == "GET" else 0)

    logger.debug(f"API Request: {method} {url} (token {mask_token(access_token)})")
    logger.debug(f"Request params: {sorted(request_params)}")

    async with create_http_client(timeout=config.http_timeout) as client:
        for attempt in range(1, attempts + 1):
            try:
                if method == "POST":
                    response = await client.post(url, data=request_params, files=files,
                                                 headers=headers)
                else:
                    response = await client.request(method, url, params=request_params, headers=headers)
            except httpx.TransportError as e:
                if attempt < attempts:
                    delay = RETRY_BACKOFF_SECONDS * 2 ** (attempt - 1)
                    logger.warning(f"Request Error on {method} {endpoint}: {e}; retrying in {delay:g}s")
                    await asyncio.sleep(delay)
                    continue
                logger.error(f"Request Error on {method} {endpoint}: {e}")
                raise

            if response.status_code in RETRY_STATUSES and attempt < attempts:
                delay = RETRY_BACKOFF_SECONDS * 2 ** (attempt - 1)
                logger.warning(f"HTTP {response.status_code} on {method} {endpoint}; retrying in {delay:g}s")
                await asyncio.sleep(delay)
                continue
            break

    logger.debug(f"API Response status: {response.status_code}")
    body = _parse_body(response)
    if response.status_code >= 400 or (isinstance(body, dict) and "error" in body):
        error = GraphAPIError.from_response(response.status_code, body)
        logger.error(f"Graph API Error: {error.message} (code {error.code}, HTTP {response.status_code})")
        raise error
    return body


def _with_access_token(parameters: Dict[str, Any]) -> Dict[str, Any]:
    schema = dict(parameters)
    properties = dict(schema.get("properties") or {})
    properties.setdefault("access_token", ACCESS_TOKEN_PROPERTY)
    schema["type"] = schema.get("type", "object")
    schema["properties"] = properties
    schema["required"] = list(schema.get("required") or [])
    return schema


def error_result(error: str, details: Any = None, **extra: Any) -> Dict[str, Any]:
    result: Dict[str, Any] = {"success": False, "error": error}
    if details is not None:
        result["details"] = details
    result.update(extra)
    return result


def graph_api_tool(name: str, description: str, parameters: Dict[str, Any],
                   needs_token: bool = True) -> Callable[[Callable], ToolDescriptor]:
    """
    Decorator turning an async Graph API function into a ToolDescriptor.

    The wrapped function receives only the arguments its schema declares,
    plus a resolved ``access_token``. Expected failures come back as a
    ``{"success": False, ...}`` result; anything else propagates to the
    dispatcher and is reported as an internal error.
    """
    schema = _with_access_token(parameters)
    declared = set(schema["properties"])

    def decorator(func: Callable) -> ToolDescriptor:
        @functools.wraps(func)
        async def handler(arguments: Dict[str, Any]) -> Any:
            kwargs = {k: v for k, v in arguments.items() if k in declared}
            ignored = sorted(set(arguments) - declared)
            if ignored:
                logger.debug(f"{name}: ignoring undeclared arguments {ignored}")

            try:
                if needs_token:
                    kwargs["access_token"] = await resolve_access_token(
                        kwargs.get("account_id"), kwargs.get("access_token"))
                return await func(**kwargs)
            except GraphAPIError as e:
                return error_result(e.message, e.to_dict())
            except AccessTokenError as e:
                return error_result(str(e), e.details)
            except ValueError as e:
                return error_result(str(e))
            except httpx.HTTPError as e:
                logger.error(f"{name}: network error: {e}")
                return error_result(f"Request to the Graph API failed: {e}", type="network_error")

        return ToolDescriptor(name=name, description=description, parameters=schema, handler=handler,
                              path=func.__module__)

    return decorator
