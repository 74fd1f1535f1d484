"""Permission inference and classification of Graph access errors.

Graph answers 401/403/404 with terse codes that mean nothing to someone
driving an agent, so those statuses are turned into a PermissionProblem that
names the kind of data involved and what to do next.
"""

from typing import Any, List, Optional
from urllib.parse import urlsplit

from .models import PermissionProblem

# (path fragments, read permission, write permission); first match wins
_PERMISSION_RULES = [
    (("/teams", "/channels", "/joinedteams"), None, None),
    (("/chats",), "Chat.Read", "ChatMessage.Send"),
    (("/messages", "/mailfolders", "/sendmail"), "Mail.Read", "Mail.Send"),
    (("/calendar", "/events"), "Calendars.Read", "Calendars.ReadWrite"),
    (("/contacts",), "Contacts.Read", "Contacts.ReadWrite"),
    (("/users",), "User.Read.All", "User.ReadWrite.All"),
    (("/groups",), "Group.Read.All", "Group.ReadWrite.All"),
    (("/drive", "/items"), "Files.Read", "Files.ReadWrite"),
    (("/sites",), "Sites.Read.All", "Sites.ReadWrite.All"),
    (("/planner", "/todo"), "Tasks.Read", "Tasks.ReadWrite"),
]

# (path segment, description); earlier entries take priority
_RESOURCE_NAMES = [
    ("messages", "emails"),
    ("mailfolders", "emails"),
    ("sendmail", "emails"),
    ("events", "calendar events"),
    ("calendarview", "calendar events"),
    ("calendar", "calendar events"),
    ("calendars", "calendar events"),
    ("channels", "Teams channels"),
    ("chats", "chats"),
    ("teams", "Teams data"),
    ("joinedteams", "Teams data"),
    ("contacts", "contacts"),
    ("planner", "Planner tasks"),
    ("todo", "To Do tasks"),
    ("drive", "files"),
    ("drives", "files"),
    ("items", "files"),
    ("children", "files"),
    ("sites", "SharePoint sites"),
    ("lists", "SharePoint lists"),
    ("groups", "groups"),
    ("members", "group members"),
    ("users", "user information"),
    ("me", "your profile"),
]


def infer_permissions(endpoint: str, method: str) -> List[str]:
    """Guess the delegated Graph permission an operation needs

    Args:
        endpoint: Graph path such as /me/messages
        method: HTTP method; GET selects the read variant

    Returns:
        List of permission names, empty when nothing matches
    """
    path = (endpoint or "").lower()
    is_read = (method or "GET").upper() == "GET"

    for fragments, read_permission, write_permission in _PERMISSION_RULES:
        if not any(fragment in path for fragment in fragments):
            continue
        if fragments[0] == "/teams":
            if "/messages" in path:
                return ["ChannelMessage.Read.All"] if is_read else ["ChannelMessage.Send"]
            return ["Team.ReadBasic.All"]
        return [read_permission if is_read else write_permission]

    if path.rstrip("/") in ("/me", "me"):
        return ["User.Read"]
    return []


def _path_segments(url: str) -> List[str]:
    path = urlsplit(url).path if "://" in url else url.split("?", 1)[0]
    return [segment.lower() for segment in path.split("/") if segment]


def describe_resource(url: str) -> str:
    """Name the kind of data a Graph URL points at, e.g. "emails"."""
    segments = _path_segments(url)
    for segment_name, description in _RESOURCE_NAMES:
        if segment_name in segments:
            return description
    return "this resource"


def _graph_error_code(body: Any) -> Optional[str]:
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        return body["error"].get("code")
    return None


def classify_access_error(status: int, url: str, method: str, body: Any = None) -> PermissionProblem:
    """Build the PermissionProblem for an upstream 401/403/404 (or other access failure)."""
    resource = describe_resource(url)
    error_code = _graph_error_code(body) or f"HTTP{status}"
    permissions = infer_permissions(urlsplit(url).path if "://" in url else url, method)
    permission_hint = f" ({', '.join(permissions)})" if permissions else ""

    if status == 401:
        return PermissionProblem(
            statusCode=status,
            errorCode=error_code,
            resource=resource,
            errorType="session_expired",
            userMessage="Your session has expired or your sign-in is no longer valid.",
            action="Sign in again or refresh the connection, then retry the request.",
        )
    if status == 403:
        return PermissionProblem(
            statusCode=status,
            errorCode=error_code,
            resource=resource,
            errorType="permission_denied",
            userMessage=f"You don't have permission to access {resource}.",
            action=f"Ask your administrator to grant the required Microsoft Graph permission{permission_hint}, "
                   f"or check that the connection was consented for it.",
        )
    if status == 404:
        return PermissionProblem(
            statusCode=status,
            errorCode=error_code,
            resource=resource,
            errorType="not_found_or_no_access",
            userMessage=f"The requested {resource} could not be found, or you don't have access to it.",
            action="Check that the IDs in the endpoint are correct and that the item is shared with you.",
        )
    return PermissionProblem(
        statusCode=status,
        errorCode=error_code,
        resource=resource,
        errorType="access_error",
        userMessage=f"Access to {resource} failed with status {status}.",
        action="Retry the request; if it keeps failing, contact your administrator.",
    )


__all__ = [
    "infer_permissions",
    "describe_resource",
    "classify_access_error",
]
