"""Endpoint discovery for discover_graph.

Discovery asks the Microsoft Learn documentation MCP server a question,
mines the answer for Graph operations and caches the outcome for a few
minutes. When Learn cannot be reached a short list of common endpoints is
returned instead, so the tool always produces something usable.
"""

import contextlib
import copy
import json
import logging
import time
from typing import Any, AsyncContextManager, AsyncIterator, Callable, Dict, Optional, Tuple

from mcp import ClientSession
from mcp import types as mcp_types
from mcp.client.streamable_http import streamablehttp_client

from ..config import Settings, get_settings
from .extraction import extract_operations
from .models import ToolArgumentError
from .permissions import infer_permissions

DISCOVERY_TIP = (
    "Pick an operation and call invoke_graph with its endpoint and method. "
    "Replace {placeholders} with real IDs first, and use queryParams (select, filter, top) "
    "to keep responses small."
)

FALLBACK_NOTE = "Common endpoint pattern - MS Learn MCP unavailable"

FALLBACK_OPERATIONS = [
    {"endpoint": "/me", "method": "GET", "description": "Get the signed-in user's profile"},
    {"endpoint": "/me/messages", "method": "GET", "description": "List the signed-in user's email messages"},
    {"endpoint": "/me/sendMail", "method": "POST", "description": "Send an email as the signed-in user"},
    {"endpoint": "/me/events", "method": "GET", "description": "List events in the user's calendar"},
    {"endpoint": "/me/calendarView", "method": "GET", "description": "List calendar events in a time window"},
    {"endpoint": "/me/drive/root/children", "method": "GET", "description": "List files in the user's OneDrive root"},
    {"endpoint": "/me/joinedTeams", "method": "GET", "description": "List the teams the user belongs to"},
    {"endpoint": "/me/todo/lists", "method": "GET", "description": "List the user's To Do task lists"},
    {"endpoint": "/users", "method": "GET", "description": "List users in the organization"},
    {"endpoint": "/groups", "method": "GET", "description": "List groups in the organization"},
]


class DocsUnavailableError(RuntimeError):
    """Raised when the documentation MCP endpoint cannot answer a search."""


class DiscoveryCache:
    """Time-limited memo of discover_graph results

    Entries are checked for expiry when read and never evicted otherwise.

    Args:
        ttl: Seconds an entry stays valid
        clock: Returns the current time in seconds
    """

    def __init__(self, ttl: float = 600.0, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[str, Tuple[Dict[str, Any], float]] = {}

    @staticmethod
    def make_key(query: str, category: Optional[str]) -> str:
        return f"{query}|{category or ''}".lower()

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        result, expiry = entry
        if self._clock() >= expiry:
            return None
        return copy.deepcopy(result)

    def put(self, key: str, result: Dict[str, Any]) -> None:
        self._entries[key] = (copy.deepcopy(result), self._clock() + self.ttl)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


SessionFactory = Callable[[str, float], AsyncContextManager[Any]]


@contextlib.asynccontextmanager
async def open_learn_session(url: str, timeout: float) -> AsyncIterator[ClientSession]:
    """Open an initialized MCP session to a streamable HTTP server"""
    async with streamablehttp_client(url=url, timeout=timeout) as (read, write, _):
        async with ClientSession(read, write) as session:
            await session.initialize()
            yield session


def _result_text(result: mcp_types.CallToolResult) -> str:
    for item in result.content:
        if isinstance(item, mcp_types.TextContent):
            return item.text
    return ""


class LearnDocsClient:
    """Search client for the Microsoft Learn documentation MCP server

    Args:
        url: Documentation MCP endpoint
        search_tool: Name of the search tool to call
        timeout: Seconds allowed for connecting and for each request
        session_factory: Async context manager factory yielding an initialized session
    """

    def __init__(
        self,
        url: str,
        search_tool: str = "microsoft_docs_search",
        timeout: float = 30.0,
        session_factory: SessionFactory = open_learn_session,
    ):
        self.url = url
        self.search_tool = search_tool
        self.timeout = timeout
        self._session_factory = session_factory

    async def search(self, query: str) -> Any:
        """Call the search tool with one query

        Returns:
            The search tool's text parsed as JSON, or `{"text": raw}` when it is not JSON

        Raises:
            DocsUnavailableError: When the session cannot be opened or the tool call fails
        """
        try:
            async with self._session_factory(self.url, self.timeout) as session:
                result = await session.call_tool(self.search_tool, arguments={"query": query})
        except Exception as exc:
            raise DocsUnavailableError(f"Documentation server unreachable: {exc}") from exc

        if result.isError:
            raise DocsUnavailableError(f"Documentation search tool reported an error: {_result_text(result)}")

        text = _result_text(result)
        logging.debug(f"[LearnDocs] Search returned {len(text)} characters")
        try:
            return json.loads(text)
        except ValueError:
            return {"text": text}


class GraphDiscovery:
    """discover_graph engine: cache, Learn search, mining and permission hints

    Args:
        docs_client: LearnDocsClient (or any object with an async `search(query)`)
        cache: DiscoveryCache shared across requests for this orchestrator
        settings: Runtime settings
    """

    def __init__(self, docs_client, cache: Optional[DiscoveryCache] = None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.docs = docs_client
        self.cache = cache if cache is not None else DiscoveryCache(ttl=self.settings.discovery_cache_ttl)

    @staticmethod
    def build_search_query(query: str, category: Optional[str]) -> str:
        if category:
            return f"Microsoft Graph {category} API {query}"
        return f"Microsoft Graph {query}"

    @staticmethod
    def _annotate(operations):
        for operation in operations:
            if "endpoint" in operation:
                operation["requiredPermissions"] = infer_permissions(operation["endpoint"], operation["method"])
        return operations

    def _fallback(self, query: str, category: Optional[str], reason: str) -> Dict[str, Any]:
        operations = [dict(op, note=FALLBACK_NOTE) for op in FALLBACK_OPERATIONS]
        self._annotate(operations)
        return {
            "success": True,
            "query": query,
            "category": category,
            "source": "fallback",
            "warning": f"Documentation search unavailable: {reason}",
            "operationCount": len(operations),
            "operations": operations,
            "tip": DISCOVERY_TIP,
        }

    async def discover(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """Find candidate Graph operations for a natural-language query

        Raises:
            ToolArgumentError: If `query` is missing or `category` is not a string
        """
        query = arguments.get("query")
        if not isinstance(query, str) or not query.strip():
            raise ToolArgumentError("'query' is required")
        query = query.strip()
        category = arguments.get("category")
        if category is not None and not isinstance(category, str):
            raise ToolArgumentError("'category' must be a string")
        category = category.strip() if category and category.strip() else None

        key = DiscoveryCache.make_key(query, category)
        cached = self.cache.get(key)
        if cached is not None:
            logging.info(f"[GraphDiscovery] Cache hit for '{key}'")
            cached["cached"] = True
            return cached

        search_query = self.build_search_query(query, category)
        logging.info(f"[GraphDiscovery] Searching Learn docs: {search_query}")
        try:
            search_result = await self.docs.search(search_query)
        except Exception as exc:
            logging.warning(f"[GraphDiscovery] Learn docs search failed, using fallback: {exc}")
            return self._fallback(query, category, str(exc))

        operations = self._annotate(extract_operations(search_result))
        result = {
            "success": True,
            "query": query,
            "category": category,
            "operationCount": len(operations),
            "operations": operations,
            "tip": DISCOVERY_TIP,
        }
        self.cache.put(key, result)
        logging.info(f"[GraphDiscovery] Found {len(operations)} operations for '{query}'")
        return result


__all__ = [
    "DocsUnavailableError",
    "DiscoveryCache",
    "open_learn_session",
    "LearnDocsClient",
    "GraphDiscovery",
    "FALLBACK_OPERATIONS",
]
