"""Facebook Marketing API tools.

Each module listed here exports ``TOOLS``, the descriptors it contributes
to the registry.
"""

TOOL_MODULES = [
    "fb_marketing_mcp.tools.accounts",
    "fb_marketing_mcp.tools.campaigns",
    "fb_marketing_mcp.tools.adsets",
    "fb_marketing_mcp.tools.creatives",
    "fb_marketing_mcp.tools.ads",
    "fb_marketing_mcp.tools.insights",
]
