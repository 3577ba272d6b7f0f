"""Ad set tools."""

from typing import Any, Dict, List, Optional
import datetime

from ..core.api import error_result, graph_api_tool, make_api_request
from ..core.utils import compact, logger, normalize_account_id, utc_timestamp

DEFAULT_TARGETING = {
    "geo_locations": {"countries": ["US"]},
    "age_min": 18,
    "age_max": 65,
}

# Defaults and allowed values per campaign objective
OBJECTIVE_CONFIGS: Dict[str, Dict[str, Any]] = {
    "OUTCOME_AWARENESS": {
        "optimization_goal": "REACH",
        "optimization_goals": ["REACH", "AD_RECALL_LIFT", "IMPRESSIONS"],
        "billing_event": "IMPRESSIONS",
        "billing_events": ["IMPRESSIONS"],
        "frequency_control_specs": [{"event": "IMPRESSIONS", "interval_days": 7, "max_frequency": 2}],
    },
    "OUTCOME_TRAFFIC": {
        "optimization_goal": "LINK_CLICKS",
        "optimization_goals": ["LINK_CLICKS", "LANDING_PAGE_VIEWS", "IMPRESSIONS", "REACH"],
        "billing_event": "IMPRESSIONS",
        "billing_events": ["LINK_CLICKS", "IMPRESSIONS"],
    },
    "OUTCOME_ENGAGEMENT": {
        "optimization_goal": "POST_ENGAGEMENT",
        "optimization_goals": ["POST_ENGAGEMENT", "PAGE_LIKES", "EVENT_RESPONSES", "CONVERSATIONS",
                               "THRUPLAY", "IMPRESSIONS"],
        "billing_event": "IMPRESSIONS",
        "billing_events": ["IMPRESSIONS", "POST_ENGAGEMENT", "PAGE_LIKES"],
    },
    "OUTCOME_LEADS": {
        "optimization_goal": "LEAD_GENERATION",
        "optimization_goals": ["LEAD_GENERATION", "OFFSITE_CONVERSIONS", "QUALITY_LEAD", "CONVERSATIONS"],
        "billing_event": "IMPRESSIONS",
        "billing_events": ["IMPRESSIONS"],
    },
    "OUTCOME_APP_PROMOTION": {
        "optimization_goal": "APP_INSTALLS",
        "optimization_goals": ["APP_INSTALLS", "APP_INSTALLS_AND_OFFSITE_CONVERSIONS", "LINK_CLICKS",
                               "VALUE", "IMPRESSIONS"],
        "billing_event": "IMPRESSIONS",
        "billing_events": ["APP_INSTALLS", "LINK_CLICKS", "IMPRESSIONS"],
    },
    "OUTCOME_SALES": {
        "optimization_goal": "OFFSITE_CONVERSIONS",
        "optimization_goals": ["OFFSITE_CONVERSIONS", "CONVERSIONS", "VALUE", "IMPRESSIONS"],
        "billing_event": "IMPRESSIONS",
        "billing_events": ["IMPRESSIONS"],
    },
}


def apply_objective_defaults(objective: str, optimization_goal: Optional[str], billing_event: Optional[str],
                             promoted_object: Dict[str, Any], destination_type: Optional[str],
                             frequency_control_specs: Optional[List[Dict[str, Any]]]) -> Dict[str, Any]:
    """
    Fill in optimization goal, billing event and related fields for an objective.

    Raises:
        ValueError: for an unsupported objective or an optimization goal it does not allow
    """
    config = OBJECTIVE_CONFIGS.get(objective)
    if config is None:
        raise ValueError(f"Unsupported campaign objective: {objective}. "
                         f"Supported: {', '.join(OBJECTIVE_CONFIGS)}")

    optimization_goal = optimization_goal or config["optimization_goal"]
    if optimization_goal not in config["optimization_goals"]:
        raise ValueError(f"Invalid optimization_goal \"{optimization_goal}\" for {objective}. "
                         f"Valid options: {', '.join(config['optimization_goals'])}")

    billing_event = billing_event or config["billing_event"]
    if billing_event not in config["billing_events"]:
        logger.warning(f"billing_event {billing_event} may not suit {objective}; "
                       f"recommended: {config['billing_events']}")

    promoted_object = dict(promoted_object or {})
    if objective == "OUTCOME_LEADS" and optimization_goal == "LEAD_GENERATION" and not destination_type:
        destination_type = "ON_AD"
    elif objective == "OUTCOME_SALES" and promoted_object and "custom_event_type" not in promoted_object:
        promoted_object["custom_event_type"] = "PURCHASE"

    if frequency_control_specs is None:
        frequency_control_specs = config.get("frequency_control_specs")

    return {
        "optimization_goal": optimization_goal,
        "billing_event": billing_event,
        "promoted_object": promoted_object,
        "destination_type": destination_type,
        "frequency_control_specs": frequency_control_specs,
    }


def _iso_time(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    try:
        return datetime.datetime.fromisoformat(value.replace("Z", "+00:00")).isoformat()
    except ValueError:
        raise ValueError(f"Invalid time {value!r}; use ISO 8601, e.g. 2024-01-15T10:00:00Z")


@graph_api_tool(
    name="create-ad-set",
    description=(
        "Create an ad set under a campaign. Optimization goal and billing event default from the "
        "campaign objective; a budget is required when the campaign has no budget of its own."
    ),
    parameters={
        "type": "object",
        "properties": {
            "account_id": {"type": "string", "description": "Facebook ad account ID (without act_ prefix)."},
            "campaign_id": {"type": "string", "description": "The campaign ID to create this ad set under."},
            "campaign_objective": {
                "type": "string",
                "enum": list(OBJECTIVE_CONFIGS),
                "description": "Campaign objective. Detected from the campaign when omitted.",
            },
            "name": {"type": "string", "description": "Ad set name (defaults to \"Ad Set <goal> <timestamp>\")."},
            "optimization_goal": {"type": "string", "description": "Optimization goal (defaults per objective)."},
            "billing_event": {"type": "string", "description": "Billing event (defaults per objective)."},
            "daily_budget": {
                "type": "integer",
                "description": "Daily budget in cents. Required when the campaign has no budget and no lifetime_budget is set.",
            },
            "lifetime_budget": {
                "type": "integer",
                "description": "Total budget in cents. Required when the campaign has no budget and no daily_budget is set.",
            },
            "bid_amount": {"type": "integer", "description": "Maximum bid in cents (optional)."},
            "bid_strategy": {
                "type": "string",
                "enum": ['LOWEST_COST_WITHOUT_CAP', 'LOWEST_COST_WITH_BID_CAP', 'COST_CAP',
                         'LOWEST_COST_WITH_MIN_ROAS'],
                "description": "Bidding strategy (default: LOWEST_COST_WITHOUT_CAP).",
            },
            "start_time": {"type": "string", "description": "Start time (ISO 8601)."},
            "end_time": {"type": "string", "description": "End time (ISO 8601)."},
            "status": {"type": "string", "enum": ["ACTIVE", "PAUSED"], "description": "Ad set status (default: PAUSED)."},
            "targeting": {
                "type": "object",
                "description": "Targeting object. Defaults to US, ages 18-65.",
            },
            "promoted_object": {"type": "object", "description": "Promoted object (page_id, pixel_id, ...)."},
            "destination_type": {"type": "string", "description": "Destination type, e.g. WEBSITE or ON_AD."},
            "attribution_spec": {
                "type": "array",
                "items": {"type": "object"},
                "description": "Attribution windows, e.g. [{\"event_type\": \"CLICK_THROUGH\", \"window_days\": 7}].",
            },
            "frequency_control_specs": {"type": "array", "items": {"type": "object"}},
            "dsa_payor": {"type": "string", "description": "Required for EU targeting: who pays for the ad."},
            "dsa_beneficiary": {"type": "string", "description": "Required for EU targeting: who benefits from the ad."},
        },
        "required": ["account_id", "campaign_id"],
    },
)
async def create_ad_set(account_id: str, campaign_id: str, access_token: str = None,
                        campaign_objective: Optional[str] = None, name: Optional[str] = None,
                        optimization_goal: Optional[str] = None, billing_event: Optional[str] = None,
                        daily_budget: Optional[int] = None, lifetime_budget: Optional[int] = None,
                        bid_amount: Optional[int] = None, bid_strategy: str = "LOWEST_COST_WITHOUT_CAP",
                        start_time: Optional[str] = None, end_time: Optional[str] = None,
                        status: str = "PAUSED", targeting: Optional[Dict[str, Any]] = None,
                        promoted_object: Optional[Dict[str, Any]] = None, destination_type: Optional[str] = None,
                        attribution_spec: Optional[List[Dict[str, Any]]] = None,
                        frequency_control_specs: Optional[List[Dict[str, Any]]] = None,
                        dsa_payor: Optional[str] = None, dsa_beneficiary: Optional[str] = None) -> dict:
    """Create an ad set, reading the campaign first to learn its objective and budget level."""
    campaign = await make_api_request(campaign_id, access_token,
                                      {"fields": "objective,daily_budget,lifetime_budget"})
    campaign_budget = bool(campaign.get("daily_budget") or campaign.get("lifetime_budget"))
    objective = campaign_objective or campaign.get("objective")

    settings = apply_objective_defaults(objective, optimization_goal, billing_event, promoted_object,
                                        destination_type, frequency_control_specs)

    params: Dict[str, Any] = {
        "name": name or f"Ad Set {settings['optimization_goal']} {utc_timestamp()}",
        "campaign_id": campaign_id,
        "optimization_goal": settings["optimization_goal"],
        "billing_event": settings["billing_event"],
        "status": status,
        "bid_strategy": bid_strategy,
        "start_time": _iso_time(start_time),
        "end_time": _iso_time(end_time),
        "targeting": compact(targeting or {}) or DEFAULT_TARGETING,
        "promoted_object": settings["promoted_object"],
        "destination_type": settings["destination_type"],
        "attribution_spec": attribution_spec,
        "frequency_control_specs": settings["frequency_control_specs"],
        "dsa_payor": dsa_payor,
        "dsa_beneficiary": dsa_beneficiary,
    }
    if bid_amount and int(bid_amount) > 0:
        params["bid_amount"] = int(bid_amount)

    if not campaign_budget:
        if lifetime_budget and int(lifetime_budget) > 0:
            params["lifetime_budget"] = int(lifetime_budget)
        elif daily_budget and int(daily_budget) > 0:
            params["daily_budget"] = int(daily_budget)
        else:
            return error_result(
                "Budget required: the campaign has no campaign-level budget (CBO), so provide either "
                "daily_budget or lifetime_budget for the ad set.",
                {"campaign_cbo_enabled": False, "daily_budget": daily_budget, "lifetime_budget": lifetime_budget},
            )

    endpoint = f"act_{normalize_account_id(account_id)}/adsets"
    data = await make_api_request(endpoint, access_token, compact(params), method="POST")

    return {
        "success": True,
        "adset": data,
        "account_id": account_id,
        "campaign_id": campaign_id,
        "campaign_objective": objective,
        "optimization_goal": settings["optimization_goal"],
        "billing_event": settings["billing_event"],
        "campaign_cbo_enabled": campaign_budget,
        "budget_info": {
            "budget_level": "campaign" if campaign_budget else "ad_set",
            "daily_budget": None if campaign_budget else params.get("daily_budget"),
            "lifetime_budget": None if campaign_budget else params.get("lifetime_budget"),
        },
    }


TOOLS = [create_ad_set]
