"""Ad tools."""

from typing import Optional
import datetime

from ..core.api import graph_api_tool, make_api_request
from ..core.utils import logger, normalize_account_id


@graph_api_tool(
    name="create-ad",
    description="Create an ad in an ad set from an existing ad creative.",
    parameters={
        "type": "object",
        "properties": {
            "account_id": {"type": "string", "description": "Ad account ID (without act_ prefix)."},
            "adset_id": {"type": "string", "description": "Ad set to place the ad in."},
            "creative_id": {"type": "string", "description": "Creative to use, e.g. from create-ad-creative."},
            "ad_name": {"type": "string", "description": "Ad name (defaults to \"Ad <date>\")."},
            "status": {
                "type": "string",
                "enum": ["PAUSED", "ACTIVE", "ARCHIVED", "DELETED"],
                "default": "PAUSED",
                "description": "Initial ad status.",
            },
        },
        "required": ["account_id", "adset_id", "creative_id"],
    },
)
async def create_ad(account_id: str, adset_id: str, creative_id: str, access_token: str = None,
                    ad_name: Optional[str] = None, status: str = "PAUSED") -> dict:
    """
    Create an ad using an existing creative.

    Args:
        account_id: Ad account ID (without act_ prefix)
        adset_id: Target ad set ID
        creative_id: Ad creative ID
        access_token: Graph API access token
        ad_name: Name of the ad
        status: Initial status (default: PAUSED)
    """
    ad_name = ad_name or f"Ad {datetime.date.today().isoformat()}"
    endpoint = f"act_{normalize_account_id(account_id)}/ads"
    params = {
        "name": ad_name,
        "adset_id": adset_id,
        "status": status,
        "creative": {"creative_id": creative_id},
    }

    data = await make_api_request(endpoint, access_token, params, method="POST")
    logger.info(f"Ad created: {data.get('id')}")
    return {
        "success": True,
        "ad": {
            "id": data.get("id"),
            "name": ad_name,
            "status": status,
            "adset_id": adset_id,
            "creative_id": creative_id,
        },
    }


TOOLS = [create_ad]
