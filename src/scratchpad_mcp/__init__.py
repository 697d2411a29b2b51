"""
Scratchpad MCP - a categorized note capture and retrieval service.

Notes are short markdown snippets filed under a free-form category. They can
be listed, filtered, full-text searched and aggregated per category through
an MCP tool server, a JSON REST API and read-only HTML fragments.

This version uses synchronous storage operations.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("scratchpad-mcp")
except PackageNotFoundError:
    __version__ = "1.0.0"
