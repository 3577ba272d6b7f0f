"""Access token resolution for Graph API tools."""

from typing import Any, Dict, List, Optional

import httpx

from .config import ServerConfig, get_config
from .utils import create_http_client, logger, mask_token, normalize_account_id


class AccessTokenError(Exception):
    """Raised when no Graph API access token can be found for a call."""
    def __init__(self, message: str, details: Any = None):
        self.details = details
        super().__init__(message)


class SupabaseTokenStore:
    """
    Looks up the long-lived Facebook token of an ad account's owner.

    Talks to the Supabase PostgREST API directly: ``facebook_ad_accounts``
    maps an account id to a ``user_id``, and ``users`` holds the
    ``facebook_long_lived_token`` for that user.
    """

    def __init__(self, url: str, key: str, timeout: float = 30.0):
        self.url = url.rstrip("/")
        self.key = key
        self.timeout = timeout

    @property
    def headers(self) -> Dict[str, str]:
        return {"apikey": self.key, "Authorization": f"Bearer {self.key}", "Accept": "application/json"}

    async def _select(self, client: httpx.AsyncClient, table: str, columns: str, **filters: Any) -> List[Dict[str, Any]]:
        params = {"select": columns}
        params.update({column: f"eq.{value}" for column, value in filters.items()})
        response = await client.get(f"{self.url}/rest/v1/{table}", params=params, headers=self.headers)
        if response.status_code >= 400:
            try:
                message = response.json().get("message", response.text)
            except ValueError:
                message = response.text
            raise AccessTokenError(f"Supabase query on {table} failed: {message}",
                                   {"status_code": response.status_code})
        rows = response.json()
        return rows if isinstance(rows, list) else [rows]

    async def get_token_for_account(self, account_id: str) -> str:
        """
        Resolve the owner of an ad account and return their Facebook token.

        Raises:
            AccessTokenError: if the account, its owner or the token is missing
        """
        account_id = normalize_account_id(account_id)
        async with create_http_client(timeout=self.timeout) as client:
            logger.debug(f"Finding user for account ID: {account_id}")
            accounts = await self._select(client, "facebook_ad_accounts", "user_id,id", id=account_id)
            if not accounts:
                raise AccessTokenError(
                    f"Ad account {account_id} not found in database. Check if the account ID is correct.")
            user_id = accounts[0].get("user_id")
            if not user_id:
                raise AccessTokenError(f"Account {account_id} found but has no associated user_id")

            users = await self._select(client, "users", "facebook_long_lived_token", id=user_id)

        token = users[0].get("facebook_long_lived_token") if users else None
        if not token:
            raise AccessTokenError(
                "No Facebook access token found for the user who owns this ad account",
                f"Account {account_id} belongs to user {user_id} but they have no Facebook token",
            )
        logger.debug(f"Facebook token retrieved for account {account_id}: {mask_token(token)}")
        return token


async def resolve_access_token(account_id: Optional[str] = None, access_token: Optional[str] = None,
                               config: Optional[ServerConfig] = None) -> str:
    """
    Pick the access token for a tool call.

    Order: the explicit argument, then FACEBOOK_MARKETING_API_ACCESS_TOKEN,
    then the Supabase lookup for the account's owner.

    Raises:
        AccessTokenError: if none of the sources yields a token
    """
    if access_token:
        logger.debug("Using access token passed as a tool argument")
        return access_token

    config = config or get_config()
    if config.access_token:
        logger.debug("Using access token from environment")
        return config.access_token

    if config.supabase_configured and account_id:
        store = SupabaseTokenStore(config.supabase_url, config.supabase_key, timeout=config.http_timeout)
        try:
            return await store.get_token_for_account(account_id)
        except httpx.HTTPError as e:
            raise AccessTokenError(f"Account lookup failed: {e}")

    raise AccessTokenError(
        "Access token is required (env: FACEBOOK_MARKETING_API_ACCESS_TOKEN)",
        {"supabase_configured": config.supabase_configured, "account_id": account_id},
    )
