"""Graph orchestration package.

This package provides the JSON-RPC dispatcher for the discover_graph,
invoke_graph and batch_invoke_graph tools together with the discovery and
invocation engines behind them.
"""

from .core import GraphOrchestrator
from .discovery import DiscoveryCache, GraphDiscovery, LearnDocsClient
from .invocation import GraphInvoker
from .models import (
    ApiVersion,
    GraphOperationDescriptor,
    GraphTool,
    HTTPMethod,
    ToolArgumentError,
    ToolCallRequest,
)

__all__ = [
    "GraphOrchestrator",
    "DiscoveryCache",
    "GraphDiscovery",
    "LearnDocsClient",
    "GraphInvoker",
    "ApiVersion",
    "GraphOperationDescriptor",
    "GraphTool",
    "HTTPMethod",
    "ToolArgumentError",
    "ToolCallRequest",
]
