"""Application settings and configuration."""

import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class Settings:
    """Runtime configuration for the Graph orchestration server.

    Args:
        host: Interface the HTTP server binds to
        port: Port the HTTP server listens on
        log_level: Root logging level name
        graph_base_url: Microsoft Graph root, without version segment
        learn_mcp_url: Microsoft Learn documentation MCP endpoint
        learn_search_tool: Documentation search tool name on that endpoint
        app_insights_connection_string: Application Insights connection string (empty disables telemetry)
        discovery_cache_ttl: Seconds a discover_graph result stays cached
        max_retries: Retries after a 429 before the throttling error is returned
        default_retry_after: Seconds to wait when Retry-After is missing or unreadable
        max_retry_after: Upper bound on any single throttling wait
        http_timeout: Total timeout for one outbound HTTP call
        default_page_size: $top injected on collection GETs
    """

    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"

    graph_base_url: str = "https://graph.microsoft.com"
    learn_mcp_url: str = "https://learn.microsoft.com/api/mcp"
    learn_search_tool: str = "microsoft_docs_search"
    app_insights_connection_string: str = ""

    discovery_cache_ttl: float = 600.0
    max_retries: int = 3
    default_retry_after: int = 5
    max_retry_after: int = 30
    http_timeout: float = 30.0
    default_page_size: int = 25

    @classmethod
    def from_env(cls) -> "Settings":
        """Load settings from environment variables."""
        return cls(
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "8080")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            graph_base_url=os.getenv("GRAPH_BASE_URL", "https://graph.microsoft.com").rstrip("/"),
            learn_mcp_url=os.getenv("LEARN_MCP_URL", "https://learn.microsoft.com/api/mcp"),
            learn_search_tool=os.getenv("LEARN_SEARCH_TOOL", "microsoft_docs_search"),
            app_insights_connection_string=os.getenv("APPLICATIONINSIGHTS_CONNECTION_STRING", ""),
            discovery_cache_ttl=float(os.getenv("DISCOVERY_CACHE_TTL", "600")),
            max_retries=int(os.getenv("GRAPH_MAX_RETRIES", "3")),
            default_retry_after=int(os.getenv("GRAPH_DEFAULT_RETRY_AFTER", "5")),
            max_retry_after=int(os.getenv("GRAPH_MAX_RETRY_AFTER", "30")),
            http_timeout=float(os.getenv("HTTP_TIMEOUT", "30")),
            default_page_size=int(os.getenv("GRAPH_DEFAULT_PAGE_SIZE", "25")),
        )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


__all__ = [
    "Settings",
    "get_settings",
]
