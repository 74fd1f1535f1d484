"""JSON-RPC dispatcher for the Graph orchestration MCP server.

This module provides the GraphOrchestrator class, which turns one raw HTTP
body into one JSON-RPC response. Protocol problems become JSON-RPC errors,
tool problems become `isError` tool results, and nothing escapes as an
exception, so the HTTP layer can always answer 200.
"""

import copy
import json
import logging
import time
import uuid
from typing import Any, Awaitable, Callable, Dict, Optional

from .. import __version__
from ..config import Settings, get_settings
from . import jsonrpc
from .discovery import DiscoveryCache, GraphDiscovery, LearnDocsClient
from .http_client import AiohttpClient
from .invocation import GraphInvoker
from .models import GraphTool, ToolArgumentError, ToolCallRequest, ToolOutput
from .redaction import redact_for_log
from .telemetry import TelemetryClient
from .tools import list_tool_descriptors

SERVER_NAME = "graph-power-orchestration"
DEFAULT_PROTOCOL_VERSION = "2024-11-05"

SERVER_INSTRUCTIONS = (
    "Use discover_graph to find the Microsoft Graph endpoint for a task, then invoke_graph to call it "
    "(or batch_invoke_graph for several independent calls). Calls run as the signed-in user."
)

_LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "notice": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
    "alert": logging.CRITICAL,
    "emergency": logging.CRITICAL,
}

_STATIC_RESULTS: Dict[str, Dict[str, Any]] = {
    "ping": {},
    "resources/list": {"resources": []},
    "resources/templates/list": {"resourceTemplates": []},
    "prompts/list": {"prompts": []},
    "completion/complete": {"completion": {"values": [], "total": 0, "hasMore": False}},
}

ToolHandler = Callable[[Dict[str, Any], Optional[str]], Awaitable[ToolOutput]]


class InvalidParamsError(ValueError):
    """JSON-RPC params that cannot be routed (-32602)."""


class GraphOrchestrator:
    """MCP server for discover_graph, invoke_graph and batch_invoke_graph

    Args:
        settings: Runtime settings; defaults to the environment
        http_client: Outbound HTTP client for Graph and telemetry
        sleep: Coroutine used to wait out Graph throttling
        cache_clock: Clock for discovery cache expiry, in seconds
        docs_client: Documentation search client; defaults to the Learn MCP server
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        http_client=None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
        cache_clock: Optional[Callable[[], float]] = None,
        docs_client=None,
    ):
        self.settings = settings or get_settings()
        self.http = http_client or AiohttpClient(timeout=self.settings.http_timeout)

        cache = DiscoveryCache(ttl=self.settings.discovery_cache_ttl, clock=cache_clock or time.monotonic)
        if docs_client is None:
            docs_client = LearnDocsClient(
                self.settings.learn_mcp_url,
                self.settings.learn_search_tool,
                timeout=self.settings.http_timeout,
            )
        self.discovery = GraphDiscovery(docs_client, cache=cache, settings=self.settings)

        invoker_kwargs = {"sleep": sleep} if sleep is not None else {}
        self.invoker = GraphInvoker(self.http, settings=self.settings, **invoker_kwargs)
        self.telemetry = TelemetryClient(self.http, self.settings.app_insights_connection_string)

        self._tool_descriptors = list_tool_descriptors()
        self._tool_handlers: Dict[GraphTool, ToolHandler] = {
            GraphTool.DISCOVER: self._discover_graph,
            GraphTool.INVOKE: self._invoke_graph,
            GraphTool.BATCH_INVOKE: self._batch_invoke_graph,
        }
        logging.info(f"[GraphMCP] Initialized '{SERVER_NAME}' with tools: {[t.value for t in self._tool_handlers]}")

    # ------------------------------------------------------------------
    # Request entry point
    # ------------------------------------------------------------------

    async def handle(self, raw_body: Any, authorization: Optional[str] = None) -> Dict[str, Any]:
        """Process one HTTP body and return the JSON-RPC response envelope"""
        correlation_id = str(uuid.uuid4())
        started = time.perf_counter()
        self.telemetry.track_event("McpRequestReceived", {"correlationId": correlation_id})

        method = None
        request_id = None
        is_error = False
        try:
            try:
                message = json.loads(raw_body)
            except (TypeError, ValueError):
                logging.warning("[GraphMCP] Request body is not valid JSON")
                is_error = True
                return jsonrpc.error(None, jsonrpc.PARSE_ERROR, "Parse error")

            if not isinstance(message, dict):
                is_error = True
                return jsonrpc.error(None, jsonrpc.INVALID_REQUEST, "Invalid Request")
            request_id = message.get("id")
            method = message.get("method")
            if not isinstance(method, str) or not method:
                is_error = True
                return jsonrpc.error(request_id, jsonrpc.INVALID_REQUEST, "Invalid Request")

            params = message.get("params")
            if params is None:
                params = {}
            if not isinstance(params, dict):
                is_error = True
                return jsonrpc.error(request_id, jsonrpc.INVALID_PARAMS, "params must be an object")

            response = await self._dispatch(request_id, method, params, authorization, correlation_id)
            is_error = "error" in response
            return response
        except Exception as exc:
            logging.exception(f"[GraphMCP] Unhandled error while processing '{method}': {exc}")
            is_error = True
            return jsonrpc.error(request_id, jsonrpc.INTERNAL_ERROR, f"Internal error: {exc}")
        finally:
            duration_ms = round((time.perf_counter() - started) * 1000, 2)
            self.telemetry.track_event("McpRequestCompleted", {
                "correlationId": correlation_id,
                "method": method,
                "durationMs": duration_ms,
                "isError": is_error,
            })

    async def _dispatch(
        self,
        request_id: Any,
        method: str,
        params: Dict[str, Any],
        authorization: Optional[str],
        correlation_id: str,
    ) -> Dict[str, Any]:
        self.telemetry.track_event("McpMethodDispatched", {
            "correlationId": correlation_id,
            "method": method,
            "toolName": params.get("name") if method == "tools/call" else None,
        })
        logging.info(f"[GraphMCP] {method} (id={request_id})")

        try:
            if method == "initialize":
                return jsonrpc.success(request_id, self._initialize(params))
            if method == "initialized" or method.startswith("notifications/"):
                return jsonrpc.success(request_id, {})
            if method == "tools/list":
                return jsonrpc.success(request_id, self.list_tools())
            if method == "tools/call":
                return jsonrpc.success(request_id, await self._tools_call(params, authorization))
            if method == "logging/setLevel":
                self._set_level(params)
                return jsonrpc.success(request_id, {})
            if method in _STATIC_RESULTS:
                return jsonrpc.success(request_id, copy.deepcopy(_STATIC_RESULTS[method]))
        except InvalidParamsError as exc:
            return jsonrpc.error(request_id, jsonrpc.INVALID_PARAMS, str(exc))

        logging.warning(f"[GraphMCP] Method not found: {method}")
        return jsonrpc.error(request_id, jsonrpc.METHOD_NOT_FOUND, "Method not found")

    # ------------------------------------------------------------------
    # Protocol methods
    # ------------------------------------------------------------------

    def _initialize(self, params: Dict[str, Any]) -> Dict[str, Any]:
        requested = params.get("protocolVersion")
        return {
            "protocolVersion": requested if isinstance(requested, str) and requested else DEFAULT_PROTOCOL_VERSION,
            "capabilities": {
                "tools": {"listChanged": False},
                "resources": {},
                "prompts": {},
                "logging": {},
            },
            "serverInfo": {"name": SERVER_NAME, "version": __version__},
            "instructions": SERVER_INSTRUCTIONS,
        }

    def list_tools(self) -> Dict[str, Any]:
        return {"tools": copy.deepcopy(self._tool_descriptors)}

    def _set_level(self, params: Dict[str, Any]) -> None:
        level = params.get("level")
        if isinstance(level, str) and level.lower() in _LOG_LEVELS:
            logging.getLogger().setLevel(_LOG_LEVELS[level.lower()])
            logging.info(f"[GraphMCP] Log level set to {level}")

    async def _tools_call(self, params: Dict[str, Any], authorization: Optional[str]) -> Dict[str, Any]:
        name = params.get("name")
        if not isinstance(name, str) or not name:
            raise InvalidParamsError("tools/call requires a tool 'name'")
        arguments = params.get("arguments")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise InvalidParamsError("tools/call 'arguments' must be an object")
        return await self.call_tool(ToolCallRequest(tool_name=name, arguments=arguments), authorization)

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------

    async def call_tool(self, request: ToolCallRequest, authorization: Optional[str] = None) -> Dict[str, Any]:
        """Run a tool and wrap the outcome as an MCP tool result"""
        try:
            tool = GraphTool(request.tool_name)
        except ValueError:
            logging.warning(f"[GraphMCP] Tool '{request.tool_name}' not found")
            available = ", ".join(t.value for t in GraphTool)
            return jsonrpc.tool_result(
                f"Unknown tool: {request.tool_name} (error {jsonrpc.METHOD_NOT_FOUND}). Available tools: {available}",
                is_error=True,
            )

        logging.info(f"[GraphMCP] Tool call: {tool.value} with args: {redact_for_log(request.arguments)}")
        handler = self._tool_handlers[tool]
        try:
            output = await handler(request.arguments, authorization)
        except ToolArgumentError as exc:
            logging.warning(f"[GraphMCP] Invalid arguments for '{tool.value}': {exc}")
            return jsonrpc.tool_result(f"Invalid arguments: {exc}", is_error=True)
        except Exception as exc:
            logging.exception(f"[GraphMCP] Error executing tool '{tool.value}': {exc}")
            return jsonrpc.tool_result(f"Tool error: {exc}", is_error=True)

        return jsonrpc.tool_result(output.payload, is_error=output.is_error)

    async def _discover_graph(self, arguments: Dict[str, Any], authorization: Optional[str]) -> ToolOutput:
        return ToolOutput(await self.discovery.discover(arguments))

    async def _invoke_graph(self, arguments: Dict[str, Any], authorization: Optional[str]) -> ToolOutput:
        return await self.invoker.invoke(arguments, authorization)

    async def _batch_invoke_graph(self, arguments: Dict[str, Any], authorization: Optional[str]) -> ToolOutput:
        return await self.invoker.batch_invoke(arguments, authorization)

    def health(self) -> Dict[str, Any]:
        return {
            "status": "healthy",
            "server": SERVER_NAME,
            "version": __version__,
            "tools": [t.value for t in GraphTool],
            "discovery_cache_entries": len(self.discovery.cache),
            "telemetry_enabled": self.telemetry.enabled,
        }


__all__ = [
    "SERVER_NAME",
    "DEFAULT_PROTOCOL_VERSION",
    "InvalidParamsError",
    "GraphOrchestrator",
]
