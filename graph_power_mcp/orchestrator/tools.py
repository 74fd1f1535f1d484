"""Tool descriptors returned by `tools/list`."""

from typing import Any, Dict, List

from mcp import types as mcp_types

from .models import ApiVersion, GraphTool, HTTPMethod

MAX_BATCH_REQUESTS = 20

_METHODS = [method.value for method in HTTPMethod]
_VERSIONS = [version.value for version in ApiVersion]

DISCOVER_GRAPH = mcp_types.Tool(
    name=GraphTool.DISCOVER.value,
    description=(
        "Find Microsoft Graph API operations for a task described in plain language. "
        "Searches Microsoft Learn and returns candidate endpoints, HTTP methods and the "
        "permissions they likely need. Call this before invoke_graph when unsure of the endpoint."
    ),
    inputSchema={
        "type": "object",
        "properties": {
            "query": {
                "type": "string",
                "description": "What you want to do, e.g. 'list unread emails' or 'create a calendar event'",
            },
            "category": {
                "type": "string",
                "description": "Optional area to focus on, e.g. mail, calendar, users, teams, files",
            },
        },
        "required": ["query"],
    },
)

INVOKE_GRAPH = mcp_types.Tool(
    name=GraphTool.INVOKE.value,
    description=(
        "Call a Microsoft Graph REST endpoint as the signed-in user. Use paths relative to the "
        "version root such as /me/messages; replace every {placeholder} with a real value. "
        "Collection results are limited to 25 items unless queryParams.top is set."
    ),
    inputSchema={
        "type": "object",
        "properties": {
            "endpoint": {
                "type": "string",
                "description": "Graph path like /me/events, or a full @odata.nextLink URL to fetch the next page",
            },
            "method": {"type": "string", "enum": _METHODS, "description": "HTTP method"},
            "body": {"type": "object", "description": "JSON body for POST, PATCH or PUT"},
            "queryParams": {
                "type": "object",
                "description": "OData options such as select, filter, orderby, top (the $ prefix is optional)",
            },
            "apiVersion": {
                "type": "string",
                "enum": _VERSIONS,
                "default": ApiVersion.V1.value,
                "description": "Graph API version",
            },
        },
        "required": ["endpoint", "method"],
    },
)

BATCH_INVOKE_GRAPH = mcp_types.Tool(
    name=GraphTool.BATCH_INVOKE.value,
    description=(
        f"Run up to {MAX_BATCH_REQUESTS} Microsoft Graph requests in one $batch call. "
        "Each request needs an id and an endpoint; results come back per id."
    ),
    inputSchema={
        "type": "object",
        "properties": {
            "requests": {
                "type": "array",
                "maxItems": MAX_BATCH_REQUESTS,
                "items": {
                    "type": "object",
                    "properties": {
                        "id": {"type": "string", "description": "Caller-chosen id for matching the response"},
                        "endpoint": {"type": "string", "description": "Graph path like /me/messages"},
                        "method": {"type": "string", "enum": _METHODS, "default": HTTPMethod.GET.value},
                        "body": {"type": "object"},
                        "headers": {"type": "object"},
                    },
                    "required": ["id", "endpoint", "method"],
                },
            },
            "apiVersion": {"type": "string", "enum": _VERSIONS, "default": ApiVersion.V1.value},
        },
        "required": ["requests"],
    },
)

TOOLS: List[mcp_types.Tool] = [DISCOVER_GRAPH, INVOKE_GRAPH, BATCH_INVOKE_GRAPH]


def list_tool_descriptors() -> List[Dict[str, Any]]:
    return [tool.model_dump(by_alias=True, exclude_none=True) for tool in TOOLS]


__all__ = [
    "MAX_BATCH_REQUESTS",
    "TOOLS",
    "list_tool_descriptors",
]
