"""Campaign tools."""

from typing import Any, Dict, List, Optional

from ..core.api import error_result, graph_api_tool, make_api_request
from ..core.utils import compact, dollars_to_cents, logger, normalize_account_id

CAMPAIGN_FIELDS = (
    "id,name,objective,account_id,buying_type,daily_budget,lifetime_budget,spend_cap,"
    "bid_strategy,pacing_type,status,effective_status,promoted_object,recommendations,"
    "start_time,stop_time,created_time,updated_time,adlabels,issues_info,"
    "special_ad_categories,special_ad_category_country,smart_promotion_type,"
    "is_skadnetwork_attribution"
)

VALID_OBJECTIVES = [
    'APP_INSTALLS', 'BRAND_AWARENESS', 'CONVERSIONS', 'EVENT_RESPONSES',
    'LEAD_GENERATION', 'LINK_CLICKS', 'LOCAL_AWARENESS', 'MESSAGES',
    'OFFER_CLAIMS', 'OUTCOME_APP_PROMOTION', 'OUTCOME_AWARENESS',
    'OUTCOME_ENGAGEMENT', 'OUTCOME_LEADS', 'OUTCOME_SALES', 'OUTCOME_TRAFFIC',
    'PAGE_LIKES', 'POST_ENGAGEMENT', 'PRODUCT_CATALOG_SALES', 'REACH',
    'STORE_VISITS', 'VIDEO_VIEWS',
]

VALID_BID_STRATEGIES = [
    'LOWEST_COST_WITHOUT_CAP', 'LOWEST_COST_WITH_BID_CAP', 'COST_CAP', 'LOWEST_COST_WITH_MIN_ROAS',
]

# Minimums in account currency units
MIN_BUDGET = 1.0
MIN_SPEND_CAP = 100.0


@graph_api_tool(
    name="get-campaigns-details",
    description="Get details of campaigns from the specified ad account.",
    parameters={
        "type": "object",
        "properties": {
            "account_id": {"type": "string", "description": "The ad account ID to fetch campaigns from."},
            "limit": {"type": "integer", "description": "Maximum number of campaigns to return (default: 25)."},
            "status_filter": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Only return campaigns with these effective statuses, e.g. [\"ACTIVE\", \"PAUSED\"].",
            },
        },
        "required": ["account_id"],
    },
)
async def get_campaigns_details(account_id: str, access_token: str = None, limit: int = 25,
                                status_filter: Optional[List[str]] = None) -> dict:
    """
    Get campaigns for an ad account with the full campaign field set.

    Args:
        account_id: Ad account ID (format: act_XXXXXXXXX or XXXXXXXXX)
        access_token: Graph API access token
        limit: Maximum number of campaigns to return
        status_filter: Effective statuses to keep (empty for all)
    """
    endpoint = f"act_{normalize_account_id(account_id)}/campaigns"
    params: Dict[str, Any] = {"fields": CAMPAIGN_FIELDS, "limit": limit}
    if status_filter:
        params["effective_status"] = status_filter
    return await make_api_request(endpoint, access_token, params)


@graph_api_tool(
    name="create-campaign",
    description="Create a campaign in an ad account. Budgets are given in dollars and converted to cents.",
    parameters={
        "type": "object",
        "properties": {
            "account_id": {
                "type": "string",
                "description": "The ID of the ad account to create the campaign under (without act_ prefix).",
            },
            "name": {"type": "string", "description": "The name of the campaign."},
            "objective": {
                "type": "string",
                "description": "The objective of the campaign.",
                "enum": ['OUTCOME_TRAFFIC', 'OUTCOME_SALES', 'OUTCOME_LEADS', 'OUTCOME_ENGAGEMENT',
                         'OUTCOME_AWARENESS', 'OUTCOME_APP_PROMOTION'],
                "default": "OUTCOME_TRAFFIC",
            },
            "status": {
                "type": "string",
                "description": "The status of the campaign.",
                "enum": ['ACTIVE', 'PAUSED', 'DELETED', 'ARCHIVED'],
                "default": "PAUSED",
            },
            "special_ad_categories": {
                "type": "array",
                "description": "Special ad categories for compliance.",
                "items": {"type": "string", "enum": ['CREDIT', 'EMPLOYMENT', 'HOUSING',
                                                     'ISSUES_ELECTIONS_POLITICS', 'NONE']},
                "default": [],
            },
            "buying_type": {
                "type": "string",
                "description": "The buying type for the campaign.",
                "enum": ['AUCTION', 'RESERVED'],
                "default": "AUCTION",
            },
            "bid_strategy": {
                "type": "string",
                "description": "Bid strategy, used with campaign budget optimization.",
                "enum": VALID_BID_STRATEGIES,
            },
            "daily_budget": {"type": "number", "description": "Daily budget in dollars (minimum 1.00)."},
            "lifetime_budget": {"type": "number", "description": "Lifetime budget in dollars (minimum 1.00)."},
            "spend_cap": {"type": "number", "description": "Spending limit in dollars (minimum 100.00)."},
            "promoted_object": {
                "type": "object",
                "description": "Object being promoted (page_id, pixel_id, application_id, ...).",
            },
            "is_skadnetwork_attribution": {
                "type": "boolean",
                "description": "Enable SKAdNetwork attribution for iOS 14+ app promotion campaigns.",
                "default": False,
            },
        },
        "required": ["account_id", "name"],
    },
)
async def create_campaign(account_id: str, name: str, access_token: str = None,
                          objective: str = "OUTCOME_TRAFFIC", status: str = "PAUSED",
                          special_ad_categories: Optional[List[str]] = None, buying_type: str = "AUCTION",
                          bid_strategy: Optional[str] = None, daily_budget: Optional[float] = None,
                          lifetime_budget: Optional[float] = None, spend_cap: Optional[float] = None,
                          promoted_object: Optional[Dict[str, Any]] = None,
                          is_skadnetwork_attribution: bool = False) -> dict:
    """
    Create a new campaign.

    Args:
        account_id: Ad account ID (without act_ prefix)
        name: Campaign name
        access_token: Graph API access token
        objective: Campaign objective (default: OUTCOME_TRAFFIC)
        status: Initial status (default: PAUSED)
        special_ad_categories: Special ad categories, sent as an empty list when omitted
        buying_type: AUCTION or RESERVED
        bid_strategy: Bid strategy for campaign budget optimization
        daily_budget: Daily budget in dollars
        lifetime_budget: Lifetime budget in dollars
        spend_cap: Spending limit in dollars
        promoted_object: Object being promoted
        is_skadnetwork_attribution: Enable iOS 14+ SKAdNetwork attribution
    """
    if objective not in VALID_OBJECTIVES:
        return error_result(f"Invalid objective. Must be one of: {', '.join(VALID_OBJECTIVES)}")
    if bid_strategy and bid_strategy not in VALID_BID_STRATEGIES:
        return error_result(f"Invalid bid_strategy. Must be one of: {', '.join(VALID_BID_STRATEGIES)}")

    params: Dict[str, Any] = {
        "name": name,
        "objective": objective,
        "status": status,
        "buying_type": buying_type,
        "special_ad_categories": special_ad_categories or [],
        "bid_strategy": bid_strategy,
        "promoted_object": promoted_object,
    }

    for key, amount in (("daily_budget", daily_budget), ("lifetime_budget", lifetime_budget)):
        if amount:
            if float(amount) < MIN_BUDGET:
                return error_result(f"{key} must be at least $1.00")
            params[key] = dollars_to_cents(amount)

    if spend_cap:
        if float(spend_cap) < MIN_SPEND_CAP:
            return error_result("spend_cap must be at least $100.00")
        params["spend_cap"] = dollars_to_cents(spend_cap)

    if is_skadnetwork_attribution:
        params["is_skadnetwork_attribution"] = True

    endpoint = f"act_{normalize_account_id(account_id)}/campaigns"
    # special_ad_categories is required by the API even when empty
    body = compact(params)
    body["special_ad_categories"] = params["special_ad_categories"]
    data = await make_api_request(endpoint, access_token, body, method="POST")

    logger.info(f"Campaign created: {data.get('id')}")
    return {
        "success": True,
        "data": data,
        "campaign_id": data.get("id"),
        "message": f"Campaign \"{name}\" created successfully with ID: {data.get('id')}",
    }


TOOLS = [get_campaigns_details, create_campaign]
