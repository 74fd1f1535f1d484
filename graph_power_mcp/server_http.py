import contextlib
import logging
import sys
from collections.abc import AsyncIterator
from typing import Optional

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from graph_power_mcp.config import Settings, get_settings
from graph_power_mcp.orchestrator import GraphOrchestrator


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        stream=sys.stderr,
        level=getattr(logging, level.upper(), logging.INFO),
        format='[%(levelname)s] %(message)s',
    )


def create_app(orchestrator: Optional[GraphOrchestrator] = None, settings: Optional[Settings] = None) -> Starlette:
    """Build the Starlette application serving the orchestrator

    Args:
        orchestrator: Orchestrator to serve; built from settings when omitted
        settings: Runtime settings; defaults to the environment

    Returns:
        Starlette app with the MCP endpoint on `/` and `/mcp` and a health check
    """
    settings = settings or get_settings()
    orchestrator = orchestrator or GraphOrchestrator(settings=settings)

    async def mcp_handler(request: Request) -> JSONResponse:
        """MCP JSON-RPC endpoint; always answers 200 with an envelope"""
        body = await request.body()
        response = await orchestrator.handle(body, request.headers.get("authorization"))
        return JSONResponse(response)

    async def health_handler(request: Request) -> JSONResponse:
        return JSONResponse(orchestrator.health())

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        """Log the endpoints on startup and drain telemetry on shutdown"""
        logging.info(f"[GraphHTTP] Graph orchestration MCP server started on {settings.host}:{settings.port}")
        logging.info("[GraphHTTP] Available endpoints:")
        logging.info(f"[GraphHTTP]   - POST http://{settings.host}:{settings.port}/mcp (MCP protocol)")
        logging.info(f"[GraphHTTP]   - GET http://{settings.host}:{settings.port}/health (Health check)")
        logging.info(f"[GraphHTTP]   - Tools: {orchestrator.health()['tools']}")
        if not orchestrator.telemetry.enabled:
            logging.info("[GraphHTTP] Telemetry disabled (no Application Insights connection string)")
        try:
            yield
        finally:
            await orchestrator.telemetry.flush()
            logging.info("[GraphHTTP] Graph orchestration MCP server shutting down...")

    app = Starlette(
        routes=[
            Route("/", mcp_handler, methods=["POST"]),
            Route("/mcp", mcp_handler, methods=["POST"]),
            Route("/health", health_handler, methods=["GET"]),
        ],
        lifespan=lifespan,
    )
    app.state.orchestrator = orchestrator
    return app


def main() -> None:
    """Main function to start the Graph orchestration HTTP server"""
    settings = get_settings()
    setup_logging(settings.log_level)

    app = create_app(settings=settings)

    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()

__all__ = [
    "setup_logging",
    "create_app",
    "main",
]
