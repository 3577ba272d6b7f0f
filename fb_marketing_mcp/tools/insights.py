"""Insights reporting tools."""

from typing import Optional
import datetime

from ..core.api import graph_api_tool, make_api_request
from ..core.utils import normalize_account_id

DEFAULT_FIELDS = "spend,account_currency"
VALID_LEVELS = ("account", "campaign", "adset", "ad")


def _parse_date(value: str, name: str) -> datetime.date:
    try:
        return datetime.date.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be a date in YYYY-MM-DD format, got {value!r}")


@graph_api_tool(
    name="get-report-for-insight",
    description="Get an insights report for an ad account over a date range.",
    parameters={
        "type": "object",
        "properties": {
            "account_id": {"type": "string", "description": "The ID of the ad account to retrieve insights for."},
            "since": {"type": "string", "description": "Start date of the time range (YYYY-MM-DD)."},
            "until": {"type": "string", "description": "End date of the time range (YYYY-MM-DD)."},
            "limit": {"type": "integer", "description": "The number of results to return (default: 100)."},
            "fields": {"type": "string", "description": "Comma-separated fields, e.g. \"spend,impressions,clicks\"."},
            "time_increment": {
                "type": "string",
                "description": "\"all_days\", \"monthly\" or a number of days per row (default: all_days).",
            },
            "level": {"type": "string", "enum": list(VALID_LEVELS), "description": "Aggregation level."},
            "breakdowns": {"type": "string", "description": "Comma-separated breakdowns, e.g. \"age,gender\"."},
        },
        "required": ["account_id", "since", "until"],
    },
)
async def get_report_for_insight(account_id: str, since: str, until: str, access_token: str = None,
                                 limit: int = 100, fields: Optional[str] = None,
                                 time_increment: str = "all_days", level: Optional[str] = None,
                                 breakdowns: Optional[str] = None) -> dict:
    """Get insights for an ad account between two dates."""
    start = _parse_date(since, "since")
    end = _parse_date(until, "until")
    if end < start:
        raise ValueError(f"until ({until}) is before since ({since})")
    if level and level not in VALID_LEVELS:
        raise ValueError(f"Invalid level. Must be one of: {', '.join(VALID_LEVELS)}")

    params = {
        "time_range": {"since": start.isoformat(), "until": end.isoformat()},
        "limit": limit,
        "fields": "".join((fields or DEFAULT_FIELDS).split()),
        "time_increment": time_increment,
    }
    if level:
        params["level"] = level
    if breakdowns:
        params["breakdowns"] = breakdowns

    endpoint = f"act_{normalize_account_id(account_id)}/insights"
    return await make_api_request(endpoint, access_token, params)


TOOLS = [get_report_for_insight]
