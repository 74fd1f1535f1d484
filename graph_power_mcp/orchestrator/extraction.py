"""Mining Graph REST operations out of documentation search results.

The Learn search tool returns prose and code snippets, not a structured API
description, so candidate operations are pulled out with regular expressions.
The patterns over- and under-match in places; they are tuned to the way Graph
reference pages write their HTTP request sections.
"""

import re
from typing import Any, Dict, List

from .models import EndpointMatch

HTTP_METHODS = ("GET", "POST", "PATCH", "PUT", "DELETE")

_PATH_CHARS = r"[A-Za-z0-9_\-./{}$=?&'(),@:%~]+"

_METHOD_PATH = re.compile(rf"\b({'|'.join(HTTP_METHODS)})\s+(/{_PATH_CHARS})")
_LABELED_PATH = re.compile(rf"\b(?:endpoint|path|url)\s*:\s*`?(/{_PATH_CHARS})", re.IGNORECASE)
_CODE_BLOCK = re.compile(r"```[A-Za-z]*\s*\n(.*?)```", re.DOTALL)
_CODE_METHOD_URL = re.compile(
    rf"\b({'|'.join(HTTP_METHODS)})\s+https://graph\.microsoft\.com(/{_PATH_CHARS})"
)
_VERSION_PREFIX = re.compile(r"^/(v1\.0|beta)(?=/|$)", re.IGNORECASE)

MAX_OPERATIONS = 10
_DESCRIPTION_LENGTH = 200


def normalize_path(raw: str) -> str:
    """Trim punctuation, query string and version prefix from a mined path."""
    path = raw.split("?", 1)[0]
    path = path.rstrip(".,;:`\"")
    while path.endswith(")") and path.count(")") > path.count("("):
        path = path[:-1].rstrip(".,;:`\"")
    if path.count("'") % 2:
        path = path.rstrip("'")
    path = _VERSION_PREFIX.sub("", path)
    if not path.startswith("/"):
        path = "/" + path
    if len(path) > 1:
        path = path.rstrip("/")
    return path


def extract_endpoints(text: str) -> List[EndpointMatch]:
    """Run the three endpoint patterns over one chunk of documentation

    Returns:
        Matches in first-seen order, unique by path and method
    """
    found: List[EndpointMatch] = []
    seen = set()

    def add(method: str, raw_path: str) -> None:
        path = normalize_path(raw_path)
        # "/users/{id | userPrincipalName}" is cut at the space by the path pattern
        if path == "/" or path.count("{") != path.count("}"):
            return
        match = EndpointMatch(path=path, method=method.upper())
        if match.key not in seen:
            seen.add(match.key)
            found.append(match)

    for method, path in _METHOD_PATH.findall(text):
        add(method, path)
    for path in _LABELED_PATH.findall(text):
        add("GET", path)
    for block in _CODE_BLOCK.findall(text):
        for method, path in _CODE_METHOD_URL.findall(block):
            add(method, path)
    return found


def _chunks_from(result: Any) -> List[Dict[str, Any]]:
    if isinstance(result, list):
        items = result
    elif isinstance(result, dict):
        items = None
        for key in ("results", "chunks", "value"):
            if isinstance(result.get(key), list):
                items = result[key]
                break
        if items is None:
            items = [result]
    elif isinstance(result, str):
        items = [{"content": result}]
    else:
        items = []
    return [item for item in items if isinstance(item, dict)]


def _field(chunk: Dict[str, Any], *names: str) -> str:
    for name in names:
        value = chunk.get(name)
        if isinstance(value, str) and value:
            return value
    return ""


def _is_graph_relevant(title: str, url: str, content: str) -> bool:
    if title or url:
        return "graph" in f"{url} {title}".lower()
    return "graph" in content.lower()


def _describe(content: str) -> str:
    text = re.sub(r"\s+", " ", content).strip()
    if len(text) > _DESCRIPTION_LENGTH:
        text = text[:_DESCRIPTION_LENGTH] + "..."
    return text


def extract_operations(search_result: Any, limit: int = MAX_OPERATIONS) -> List[Dict[str, Any]]:
    """Turn a documentation search result into candidate Graph operations

    Args:
        search_result: Parsed search tool output (list, object or raw text wrapper)
        limit: Maximum number of operations to return

    Returns:
        Operations with endpoint/method, or reference-only entries for Graph
        pages where no endpoint could be extracted
    """
    operations: List[Dict[str, Any]] = []
    seen = set()

    for chunk in _chunks_from(search_result):
        title = _field(chunk, "title", "name")
        url = _field(chunk, "contentUrl", "url", "link")
        content = _field(chunk, "content", "text", "excerpt", "snippet")
        if not _is_graph_relevant(title, url, content):
            continue

        matches = extract_endpoints(content)
        if not matches:
            key = f"doc|{url or title}"
            if key in seen or not (url or title):
                continue
            seen.add(key)
            operations.append({
                "title": title,
                "documentation": url,
                "note": "Reference documentation - no endpoint pattern found; read the page for details",
            })
        for match in matches:
            if match.key in seen:
                continue
            seen.add(match.key)
            operations.append({
                "endpoint": match.path,
                "method": match.method,
                "title": title,
                "description": _describe(content),
                "documentation": url,
            })
        if len(operations) >= limit:
            break

    return operations[:limit]


__all__ = [
    "HTTP_METHODS",
    "MAX_OPERATIONS",
    "normalize_path",
    "extract_endpoints",
    "extract_operations",
]
