"""
Facebook Marketing MCP - Python Package

This package exposes Facebook Marketing Graph API endpoints as Model Context
Protocol tools, served over stdio or Server-Sent Events.
"""

__version__ = "0.1.0"

from fb_marketing_mcp.core.server import main

__all__ = [
    'main',
    'entrypoint',
]


# Define a main function to be used as a package entry point
def entrypoint():
    """Main entry point for the package when invoked from the console script."""
    return main()
