"""REST API and HTML views for the Scratchpad."""
from scratchpad_mcp.api.app import create_app

__all__ = ["create_app"]
