"""Execution of Graph REST calls for invoke_graph and batch_invoke_graph.

This module provides the GraphInvoker class, which validates caller supplied
operations, builds the Graph URL, forwards the caller's bearer token, retries
on throttling and shapes the result for the agent.
"""

import asyncio
import logging
import re
from dataclasses import asdict
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional
from urllib.parse import quote, unquote, urlencode, urlsplit

from ..config import Settings, get_settings
from .models import (
    ApiVersion,
    GraphOk,
    GraphOperationDescriptor,
    GraphResult,
    HTTPMethod,
    ToolArgumentError,
    ToolOutput,
    UpstreamError,
)
from .permissions import classify_access_error
from .redaction import redact_for_log
from .summarizer import summarize_response
from .tools import MAX_BATCH_REQUESTS

ODATA_OPTIONS = {
    "select", "filter", "expand", "orderby", "top", "skip",
    "search", "count", "format", "skiptoken",
}

COLLECTION_SEGMENTS = {
    "messages", "events", "users", "groups", "teams", "channels", "members",
    "children", "items", "lists", "tasks", "contacts", "calendars", "drives", "sites",
}

_PLACEHOLDER = re.compile(r"\{[^{}/?&=]*\}")
_VERSION_PATH = re.compile(r"^/(v1\.0|beta)(?=/|$)", re.IGNORECASE)
_ACCESS_STATUSES = (401, 403, 404)
_PAGINATION_HINT = (
    "More results are available. Call invoke_graph again with method GET and "
    "endpoint set to the full nextLink URL to get the next page."
)


def parse_method(value: Any, context: str = "") -> HTTPMethod:
    prefix = f"{context}: " if context else ""
    if not isinstance(value, str) or not value.strip():
        raise ToolArgumentError(f"{prefix}'method' is required")
    try:
        return HTTPMethod(value.strip().upper())
    except ValueError:
        allowed = ", ".join(m.value for m in HTTPMethod)
        raise ToolArgumentError(f"{prefix}'method' must be one of {allowed}; got '{value}'") from None


def parse_api_version(value: Any) -> ApiVersion:
    if value is None or value == "":
        return ApiVersion.V1
    if isinstance(value, str):
        for version in ApiVersion:
            if value.strip().lower() == version.value:
                return version
    raise ToolArgumentError(f"'apiVersion' must be 'v1.0' or 'beta'; got '{value}'")


def _query_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(str(v) for v in value)
    return str(value)


def normalize_query_params(raw: Any) -> Dict[str, str]:
    """`$`-prefix OData system options; pass other parameters through unchanged."""
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ToolArgumentError("'queryParams' must be an object")

    normalized: Dict[str, str] = {}
    for key, value in raw.items():
        if value is None:
            continue
        name = str(key).strip()
        bare = name.lstrip("$")
        if bare.lower() in ODATA_OPTIONS:
            name = "$" + bare.lower()
        normalized[name] = _query_value(value)
    return normalized


def split_inline_query(query: str) -> Dict[str, str]:
    """Parse a query string without treating `+` as a space."""
    params: Dict[str, str] = {}
    for pair in query.split("&"):
        if not pair:
            continue
        name, _, value = pair.partition("=")
        params[unquote(name)] = unquote(value)
    return params


def _path_only(endpoint: str) -> str:
    return endpoint.split("?", 1)[0]


def _last_segment(endpoint: str) -> str:
    segments = [s for s in _path_only(endpoint).split("/") if s]
    return segments[-1].lower() if segments else ""


def is_collection_path(endpoint: str) -> bool:
    return _last_segment(endpoint) in COLLECTION_SEGMENTS


def validate_endpoint(endpoint: str, method: HTTPMethod) -> None:
    """Reject endpoints Graph would misroute or that are unsafe to send

    Raises:
        ToolArgumentError: For placeholders, double slashes, an explicit
            version prefix, or a DELETE aimed at a whole collection
    """
    placeholders = _PLACEHOLDER.findall(endpoint)
    if placeholders:
        raise ToolArgumentError(
            f"Endpoint '{endpoint}' contains unresolved placeholder(s) {', '.join(placeholders)}. "
            f"Replace them with real values (look IDs up with a list call first)."
        )

    path = _path_only(endpoint)
    if "//" in path:
        raise ToolArgumentError(f"Endpoint '{endpoint}' contains '//'; check for an empty path segment.")

    relative = path.lstrip("/").lower()
    for version in ApiVersion:
        if relative == version.value or relative.startswith(version.value + "/"):
            raise ToolArgumentError(
                f"Endpoint '{endpoint}' must not start with '{version.value}/'. "
                f"Pass the version through the apiVersion argument instead."
            )

    if method is HTTPMethod.DELETE and is_collection_path(endpoint):
        raise ToolArgumentError(
            f"DELETE on '{endpoint}' would target a whole collection. Add the id of the item to delete."
        )


def apply_calendar_defaults(endpoint: str, query: Dict[str, str], now: datetime) -> None:
    """Fill in the calendar parameters Graph requires or that make results usable."""
    path = _path_only(endpoint).lower()
    if "/calendarview" in path:
        present = {key.lower() for key in query}
        start = now.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
        if "startdatetime" not in present:
            query["startDateTime"] = start.strftime("%Y-%m-%dT%H:%M:%SZ")
        if "enddatetime" not in present:
            query["endDateTime"] = (start + timedelta(days=7)).strftime("%Y-%m-%dT%H:%M:%SZ")
    elif _last_segment(path) == "events" and "$orderby" not in query:
        query["$orderby"] = "start/dateTime"


class GraphInvoker:
    """Runs validated Graph operations with the caller's delegated token

    Args:
        http_client: Object with an async `request(method, url, headers, json_body)`
        settings: Runtime settings (Graph root, retry policy, page size)
        sleep: Coroutine used to wait out throttling
        clock: Returns the current time, used for calendar defaults
    """

    def __init__(
        self,
        http_client,
        settings: Optional[Settings] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.http = http_client
        self.settings = settings or get_settings()
        self._sleep = sleep
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # ------------------------------------------------------------------
    # Operation building
    # ------------------------------------------------------------------

    def _absolute_operation(self, endpoint: str, method: HTTPMethod, body: Any) -> GraphOperationDescriptor:
        graph_root = urlsplit(self.settings.graph_base_url)
        target = urlsplit(endpoint)
        if target.scheme != "https" or target.netloc.lower() != graph_root.netloc.lower():
            raise ToolArgumentError(
                f"Absolute endpoints must be Microsoft Graph URLs under {self.settings.graph_base_url}"
            )
        version = ApiVersion.BETA if target.path.lower().startswith("/beta/") else ApiVersion.V1
        validate_endpoint(_VERSION_PATH.sub("", unquote(target.path)) or "/", method)
        return GraphOperationDescriptor(endpoint=endpoint, method=method, body=body, api_version=version)

    def build_operation(self, arguments: Dict[str, Any]) -> GraphOperationDescriptor:
        """Validate invoke_graph arguments into a GraphOperationDescriptor

        Raises:
            ToolArgumentError: If any argument is missing or invalid
        """
        endpoint = arguments.get("endpoint")
        if not isinstance(endpoint, str) or not endpoint.strip():
            raise ToolArgumentError("'endpoint' is required")
        endpoint = endpoint.strip()
        method = parse_method(arguments.get("method"))
        api_version = parse_api_version(arguments.get("apiVersion"))

        body = arguments.get("body")
        if body is not None and not isinstance(body, dict):
            raise ToolArgumentError("'body' must be a JSON object")

        if endpoint.lower().startswith(("https://", "http://")):
            return self._absolute_operation(endpoint, method, body)

        query: Dict[str, str] = {}
        if "?" in endpoint:
            endpoint, inline = endpoint.split("?", 1)
            query.update(normalize_query_params(split_inline_query(inline)))
        query.update(normalize_query_params(arguments.get("queryParams")))

        validate_endpoint(endpoint, method)
        if not endpoint.startswith("/"):
            endpoint = "/" + endpoint

        if method is HTTPMethod.GET:
            apply_calendar_defaults(endpoint, query, self._clock())

        return GraphOperationDescriptor(
            endpoint=endpoint,
            method=method,
            body=body,
            query_params=query,
            api_version=api_version,
        )

    def build_url(self, operation: GraphOperationDescriptor) -> str:
        """Final request URL, with $top injected on collection GETs"""
        if operation.is_absolute:
            return operation.endpoint

        url = f"{self.settings.graph_base_url}/{operation.api_version.value}{operation.endpoint}"
        query = dict(operation.query_params)
        if (
            operation.method is HTTPMethod.GET
            and is_collection_path(operation.endpoint)
            and "$top" not in query
        ):
            query["$top"] = str(self.settings.default_page_size)
        if query:
            url += "?" + urlencode(query, safe="$/,:'()@", quote_via=quote)
        return url

    # ------------------------------------------------------------------
    # HTTP execution
    # ------------------------------------------------------------------

    def _retry_delay(self, retry_after: Optional[str]) -> float:
        try:
            delay = float(retry_after)
        except (TypeError, ValueError):
            delay = float(self.settings.default_retry_after)
        return max(0.0, min(delay, float(self.settings.max_retry_after)))

    async def execute(
        self,
        method: str,
        url: str,
        authorization: Optional[str],
        body: Any = None,
        extra_headers: Optional[Dict[str, str]] = None,
    ) -> GraphResult:
        """Send one Graph request, waiting out 429 responses

        Returns:
            GraphOk for 2xx, otherwise UpstreamError (with a PermissionProblem
            attached for 401/403/404)
        """
        headers = {"Accept": "application/json"}
        if authorization:
            headers["Authorization"] = authorization
        headers.update(extra_headers or {})

        retries = 0
        while True:
            response = await self.http.request(method, url, headers=headers, json_body=body)
            if response.status != 429 or retries >= self.settings.max_retries:
                break
            retries += 1
            delay = self._retry_delay(response.headers.get("retry-after"))
            logging.warning(
                f"[GraphInvoke] Throttled on {method} {url}; retry {retries}/{self.settings.max_retries} in {delay:g}s"
            )
            await self._sleep(delay)

        if response.ok:
            logging.info(f"[GraphInvoke] {method} {url} returned {response.status}")
            return GraphOk(status=response.status, data=response.body, headers=response.headers)

        logging.warning(f"[GraphInvoke] {method} {url} failed with {response.status}")
        return self._upstream_error(response.status, response.body, method, url)

    def _upstream_error(self, status: int, body: Any, method: str, url: str) -> UpstreamError:
        code = f"HTTP{status}"
        message = f"Graph request failed with status {status}"
        if isinstance(body, dict) and isinstance(body.get("error"), dict):
            code = body["error"].get("code") or code
            message = body["error"].get("message") or message
        elif isinstance(body, str) and body:
            message = body[:500]

        permission = None
        if status in _ACCESS_STATUSES:
            permission = classify_access_error(status, url, method, body)
        return UpstreamError(status=status, code=code, message=message, details=body, permission=permission)

    @staticmethod
    def _error_output(error: UpstreamError) -> ToolOutput:
        if error.permission is not None:
            return ToolOutput(asdict(error.permission), is_error=True)
        return ToolOutput(error.to_payload(), is_error=True)

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------

    async def invoke(self, arguments: Dict[str, Any], authorization: Optional[str]) -> ToolOutput:
        """invoke_graph: run a single Graph operation"""
        operation = self.build_operation(arguments)
        url = self.build_url(operation)

        extra_headers = {}
        if "$search=" in url or "$count=" in url:
            extra_headers["ConsistencyLevel"] = "eventual"

        if operation.body is not None:
            logging.debug(f"[GraphInvoke] Request body: {redact_for_log(operation.body)}")
        result = await self.execute(operation.method.value, url, authorization, operation.body, extra_headers)
        if isinstance(result, UpstreamError):
            return self._error_output(result)
        return ToolOutput(self._success_payload(operation, result))

    def _success_payload(self, operation: GraphOperationDescriptor, result: GraphOk) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "success": True,
            "endpoint": operation.endpoint,
            "method": operation.method.value,
            "apiVersion": operation.api_version.value,
        }
        if result.status == 204 or result.data is None:
            payload["data"] = None
            payload["message"] = "Request completed with no content returned."
            return payload

        payload["data"] = summarize_response(result.data)
        if isinstance(result.data, dict):
            next_link = result.data.get("@odata.nextLink")
            if next_link:
                payload["hasMore"] = True
                payload["nextLink"] = next_link
                payload["paginationHint"] = _PAGINATION_HINT
            if "@odata.count" in result.data:
                payload["totalCount"] = result.data["@odata.count"]
        return payload

    def _batch_entry(self, index: int, item: Any, seen_ids: set) -> Dict[str, Any]:
        if not isinstance(item, dict):
            raise ToolArgumentError(f"requests[{index}] must be an object")

        request_id = item.get("id")
        if request_id is None or not str(request_id).strip():
            raise ToolArgumentError(f"requests[{index}] is missing 'id'")
        request_id = str(request_id).strip()
        if request_id in seen_ids:
            raise ToolArgumentError(f"Duplicate request id '{request_id}' in batch")
        seen_ids.add(request_id)

        endpoint = item.get("endpoint")
        if not isinstance(endpoint, str) or not endpoint.strip():
            raise ToolArgumentError(f"Request '{request_id}' is missing 'endpoint'")
        endpoint = endpoint.strip()
        if not endpoint.startswith("/"):
            endpoint = "/" + endpoint

        method = parse_method(item.get("method") or HTTPMethod.GET.value, context=f"Request '{request_id}'")
        try:
            validate_endpoint(endpoint, method)
        except ToolArgumentError as exc:
            raise ToolArgumentError(f"Request '{request_id}': {exc}") from exc

        entry: Dict[str, Any] = {"id": request_id, "method": method.value, "url": endpoint}
        headers = item.get("headers")
        if headers is not None:
            if not isinstance(headers, dict):
                raise ToolArgumentError(f"Request '{request_id}': 'headers' must be an object")
            entry["headers"] = {str(k): str(v) for k, v in headers.items()}
        body = item.get("body")
        if body is not None:
            entry["body"] = body
            entry.setdefault("headers", {}).setdefault("Content-Type", "application/json")
        return entry

    async def batch_invoke(self, arguments: Dict[str, Any], authorization: Optional[str]) -> ToolOutput:
        """batch_invoke_graph: run up to 20 operations in one $batch request"""
        requests = arguments.get("requests")
        if not isinstance(requests, list) or not requests:
            raise ToolArgumentError("'requests' must be a non-empty array")
        if len(requests) > MAX_BATCH_REQUESTS:
            raise ToolArgumentError(
                f"A batch can hold at most {MAX_BATCH_REQUESTS} requests; got {len(requests)}"
            )
        api_version = parse_api_version(arguments.get("apiVersion"))

        seen_ids: set = set()
        batch_requests = [self._batch_entry(i, item, seen_ids) for i, item in enumerate(requests)]

        url = f"{self.settings.graph_base_url}/{api_version.value}/$batch"
        logging.info(f"[GraphInvoke] Sending $batch with {len(batch_requests)} requests")
        result = await self.execute("POST", url, authorization, {"requests": batch_requests})
        if isinstance(result, UpstreamError):
            return self._error_output(result)

        returned = {}
        if isinstance(result.data, dict):
            for sub in result.data.get("responses") or []:
                if isinstance(sub, dict):
                    returned[str(sub.get("id"))] = sub

        responses: List[Dict[str, Any]] = []
        for entry in batch_requests:
            sub = returned.get(entry["id"])
            if sub is None:
                responses.append({
                    "id": entry["id"],
                    "status": None,
                    "success": False,
                    "error": {"message": "Graph returned no response for this request"},
                })
                continue

            body = sub.get("body")
            try:
                status = int(sub.get("status"))
            except (TypeError, ValueError):
                responses.append({
                    "id": entry["id"],
                    "status": None,
                    "success": False,
                    "error": {"message": f"Graph returned an unreadable status {sub.get('status')!r}", "body": body},
                })
                continue

            if 200 <= status < 300:
                responses.append({"id": entry["id"], "status": status, "success": True, "data": summarize_response(body)})
            else:
                error = body.get("error", body) if isinstance(body, dict) else body
                responses.append({"id": entry["id"], "status": status, "success": False, "error": error})

        success_count = sum(1 for r in responses if r["success"])
        error_count = len(responses) - success_count
        return ToolOutput({
            "success": error_count == 0,
            "batchSize": len(batch_requests),
            "successCount": success_count,
            "errorCount": error_count,
            "responses": responses,
        })


__all__ = [
    "ODATA_OPTIONS",
    "COLLECTION_SEGMENTS",
    "parse_method",
    "parse_api_version",
    "normalize_query_params",
    "split_inline_query",
    "is_collection_path",
    "validate_endpoint",
    "apply_calendar_defaults",
    "GraphInvoker",
]
