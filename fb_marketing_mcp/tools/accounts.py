"""Ad account tools."""

from ..core.api import graph_api_tool, make_api_request
from ..core.utils import normalize_account_id

ACCOUNT_FIELDS = (
    "id,name,account_id,account_status,amount_spent,balance,currency,age,"
    "business_city,business_country_code,timezone_name,spend_cap,min_daily_budget"
)


@graph_api_tool(
    name="get-ad-account",
    description="Retrieve details of an ad account from the Facebook Marketing API.",
    parameters={
        "type": "object",
        "properties": {
            "account_id": {
                "type": "string",
                "description": "The ID of the ad account to retrieve (with or without act_ prefix).",
            },
            "fields": {
                "type": "string",
                "description": "Comma-separated fields to return (defaults to the common account fields).",
            },
        },
        "required": ["account_id"],
    },
)
async def get_ad_account(account_id: str, access_token: str = None, fields: str = None) -> dict:
    """
    Get details for a single ad account.

    Args:
        account_id: Ad account ID (format: act_XXXXXXXXX or XXXXXXXXX)
        access_token: Graph API access token
        fields: Comma-separated field list
    """
    endpoint = f"act_{normalize_account_id(account_id)}"
    return await make_api_request(endpoint, access_token, {"fields": fields or ACCOUNT_FIELDS})


TOOLS = [get_ad_account]
