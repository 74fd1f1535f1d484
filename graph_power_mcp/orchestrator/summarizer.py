"""Response size limiting for Graph payloads.

Mail and event bodies are the usual reason a Graph response blows past what an
MCP client will accept, so long `body.content` values are reduced to plain
text and truncated, and long `bodyPreview` values are cut. Everything else is
copied through unchanged.
"""

import html
import re
from typing import Any

MAX_BODY_CONTENT = 500
MAX_BODY_PREVIEW = 1000
ELLIPSIS = "..."

_SCRIPT_STYLE = re.compile(r"<(script|style)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
_BLOCK_BREAK = re.compile(r"<\s*(br|/p|/div|/li|/tr|/h[1-6])\b[^>]*>", re.IGNORECASE)
_TAG = re.compile(r"<[^>]+>")
_WHITESPACE = re.compile(r"\s+")


def strip_html(content: str) -> str:
    """Reduce an HTML fragment to collapsed plain text."""
    text = _SCRIPT_STYLE.sub(" ", content)
    text = _BLOCK_BREAK.sub(" ", text)
    text = _TAG.sub("", text)
    text = html.unescape(text)
    return _WHITESPACE.sub(" ", text).strip()


def truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + ELLIPSIS


def _summarize_body(body: dict) -> dict:
    content = body.get("content")
    if not isinstance(content, str) or len(content) <= MAX_BODY_CONTENT:
        return summarize_response(body)

    summarized = {k: summarize_response(v) for k, v in body.items() if k != "content"}
    summarized["content"] = truncate(strip_html(content), MAX_BODY_CONTENT)
    summarized["contentType"] = "text"
    summarized["_truncated"] = True
    return summarized


def summarize_response(data: Any) -> Any:
    """Return a copy of a Graph JSON value with oversized bodies reduced."""
    if isinstance(data, list):
        return [summarize_response(item) for item in data]
    if not isinstance(data, dict):
        return data

    result = {}
    for key, value in data.items():
        if key == "body" and isinstance(value, dict):
            result[key] = _summarize_body(value)
        elif isinstance(key, str) and key.lower() == "bodypreview" and isinstance(value, str):
            result[key] = truncate(value, MAX_BODY_PREVIEW)
        else:
            result[key] = summarize_response(value)
    return result


__all__ = [
    "MAX_BODY_CONTENT",
    "MAX_BODY_PREVIEW",
    "strip_html",
    "truncate",
    "summarize_response",
]
