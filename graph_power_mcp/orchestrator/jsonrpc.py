"""JSON-RPC 2.0 envelopes and MCP tool result content."""

import json
from typing import Any, Dict, Optional

from mcp import types as mcp_types

PARSE_ERROR = mcp_types.PARSE_ERROR
INVALID_REQUEST = mcp_types.INVALID_REQUEST
METHOD_NOT_FOUND = mcp_types.METHOD_NOT_FOUND
INVALID_PARAMS = mcp_types.INVALID_PARAMS
INTERNAL_ERROR = mcp_types.INTERNAL_ERROR


def success(request_id: Any, result: Dict[str, Any]) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


def error(request_id: Any, code: int, message: str, data: Optional[Any] = None) -> Dict[str, Any]:
    error_data = mcp_types.ErrorData(code=code, message=message, data=data)
    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "error": error_data.model_dump(exclude_none=True),
    }


def tool_result(payload: Any, is_error: bool = False) -> Dict[str, Any]:
    """Wrap a tool payload as an MCP CallToolResult

    Strings are sent as-is, anything else as indented JSON text.
    """
    text = payload if isinstance(payload, str) else json.dumps(payload, indent=2, default=str)
    result = mcp_types.CallToolResult(
        content=[mcp_types.TextContent(type="text", text=text)],
        isError=is_error,
    )
    return result.model_dump(by_alias=True, exclude_none=True)


__all__ = [
    "PARSE_ERROR",
    "INVALID_REQUEST",
    "METHOD_NOT_FOUND",
    "INVALID_PARAMS",
    "INTERNAL_ERROR",
    "success",
    "error",
    "tool_result",
]
