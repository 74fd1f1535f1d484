"""Data models for Graph tool calls, operations and upstream results.

This module contains the request-scoped structures passed between the
dispatcher, the discovery engine and the invocation engine. None of them
outlive a single JSON-RPC request.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Union


class HTTPMethod(Enum):
    """HTTP methods accepted for Graph operations"""
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"


class ApiVersion(Enum):
    """Graph API versions a caller may target"""
    V1 = "v1.0"
    BETA = "beta"


class GraphTool(Enum):
    """Tools served by the orchestrator, keyed by their MCP tool name"""
    DISCOVER = "discover_graph"
    INVOKE = "invoke_graph"
    BATCH_INVOKE = "batch_invoke_graph"


class ToolArgumentError(ValueError):
    """Raised when tool arguments are missing, malformed or unsafe."""


@dataclass
class ToolCallRequest:
    """A decoded `tools/call` request

    Args:
        tool_name: Name of the tool being called
        arguments: Raw tool arguments from the JSON-RPC params
    """
    tool_name: str
    arguments: Dict[str, Any] = field(default_factory=dict)


@dataclass
class GraphOperationDescriptor:
    """A validated, normalized Graph REST call

    Args:
        endpoint: Path relative to the version root (leading slash), or a full Graph next link
        method: HTTP method to use
        body: Optional JSON request body
        query_params: Query parameters with OData options already `$`-prefixed
        api_version: Graph version segment
    """
    endpoint: str
    method: HTTPMethod
    body: Optional[Dict[str, Any]] = None
    query_params: Dict[str, str] = field(default_factory=dict)
    api_version: ApiVersion = ApiVersion.V1

    @property
    def is_absolute(self) -> bool:
        return self.endpoint.lower().startswith("https://")


@dataclass
class EndpointMatch:
    """A candidate operation mined from documentation text"""
    path: str
    method: str

    @property
    def key(self) -> str:
        return f"{self.path}|{self.method}"


@dataclass
class PermissionProblem:
    """Human-readable classification of a 401/403/404 from Graph"""
    statusCode: int
    errorCode: str
    resource: str
    errorType: str
    userMessage: str
    action: str


@dataclass
class HttpResponse:
    """Outbound HTTP response as seen by the orchestrator

    Args:
        status: HTTP status code
        headers: Response headers with lowercase names
        body: Parsed JSON, raw text, or None for an empty body
    """
    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


@dataclass
class GraphOk:
    """Successful Graph call"""
    status: int
    data: Any
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass
class UpstreamError:
    """Failed Graph call; `permission` is set for 401/403/404"""
    status: int
    code: str
    message: str
    details: Any = None
    permission: Optional[PermissionProblem] = None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "error": True,
            "status": self.status,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


GraphResult = Union[GraphOk, UpstreamError]


@dataclass
class ToolOutput:
    """Result of a tool handler before it is wrapped as MCP content"""
    payload: Any
    is_error: bool = False


__all__ = [
    "HTTPMethod",
    "ApiVersion",
    "GraphTool",
    "ToolArgumentError",
    "ToolCallRequest",
    "GraphOperationDescriptor",
    "EndpointMatch",
    "PermissionProblem",
    "HttpResponse",
    "GraphOk",
    "UpstreamError",
    "GraphResult",
    "ToolOutput",
]
