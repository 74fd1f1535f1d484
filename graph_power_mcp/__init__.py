"""MCP server that discovers and invokes Microsoft Graph operations for an agent."""

__version__ = "1.0.0"
