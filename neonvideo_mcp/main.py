"""
NeonVideo MCP server - Main entry point

Exposes the neonvideo_action tool over streamable HTTP at /mcp. When OAuth
is configured, every /mcp request must carry a bearer token issued by the
configured authorization server; clients discover that server through
/.well-known/oauth-protected-resource.
"""

import logging
from pathlib import Path
from typing import Annotated, Optional

import uvicorn
from fastmcp import FastMCP
from fastmcp.server.dependencies import get_http_request
from fastmcp.tools import ToolResult
from pydantic import Field
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from neonvideo_mcp.actions.schemas import ActionName, ActionRequest
from neonvideo_mcp.auth.errors import ConfigurationError
from neonvideo_mcp.auth.token_verifier import AuthInfo
from neonvideo_mcp.config import APP_NAME, load_settings
from neonvideo_mcp.context import AppContext, build_app_context
from neonvideo_mcp.metadata import (
    METADATA_CACHE_CONTROL,
    OAUTH_PROTECTED_RESOURCE_PATH,
    get_protected_resource_metadata,
)
from neonvideo_mcp.middleware import OAuthMiddleware, setup_logging

logger = logging.getLogger(__name__)

SERVER_NAME = "neonvideo-ai"
MCP_PATH = "/mcp"

WIDGET_URI = "ui://widget/neonvideo-player.html"
WIDGET_MIME_TYPE = "text/html+skybridge"
WIDGET_PATH = Path(__file__).parent / "web" / "neonvideo-widget.html"

TOOL_META = {
    "openai/outputTemplate": WIDGET_URI,
    "openai/toolInvocation/invoking": "Contacting NeonVideo.AI…",
    "openai/toolInvocation/invoked": "NeonVideo.AI responded.",
}

WIDGET_META = {
    "openai/widgetDescription": (
        "Displays NeonVideo.AI commands, trigger status updates, "
        "and streams completed videos right inside ChatGPT."
    ),
    "openai/widgetPrefersBorder": True,
}


def load_widget_template(path: Path = WIDGET_PATH) -> str:
    try:
        return path.read_text(encoding="utf-8").strip()
    except OSError as e:
        logger.error(f"Failed to load widget template at {path}: {e}")
        raise RuntimeError(f"Missing NeonVideo widget template at {path}") from e


def current_auth_info() -> Optional[AuthInfo]:
    """AuthInfo stored by OAuthMiddleware for the active HTTP request, if any."""
    try:
        request = get_http_request()
    except RuntimeError:
        return None
    return getattr(request.state, "auth", None)


def create_mcp(context: AppContext) -> FastMCP:
    """
    Create the FastMCP server with its tool, widget resource and HTTP routes.

    Args:
        context: Application context

    Returns:
        FastMCP instance
    """
    mcp = FastMCP(name=SERVER_NAME)
    widget_template = load_widget_template()

    @mcp.tool(
        name="neonvideo_action",
        title=f"{APP_NAME} actions",
        description="Generate NeonVideo music videos or retrieve project status.",
        meta=TOOL_META,
        output_schema=None,
    )
    async def neonvideo_action(
        action: Annotated[ActionName, Field(description="NeonVideo.AI action to execute")] = "help",
        prompt: Annotated[
            Optional[str],
            Field(description="Detailed natural language description of the desired music video"),
        ] = None,
        projectId: Annotated[
            Optional[str],
            Field(description="Existing NeonVideo project identifier to check status for"),
        ] = None,
        authToken: Annotated[
            Optional[str],
            Field(description="Optional NeonVideo auth token override"),
        ] = None,
    ) -> ToolResult:
        request = ActionRequest(action=action, prompt=prompt, project_id=projectId, auth_token=authToken)
        response = await context.dispatcher.dispatch(request, current_auth_info())
        return ToolResult(
            content=response.text,
            structured_content=response.structured_content(),
            meta=response.meta,
        )

    @mcp.resource(
        WIDGET_URI,
        name="neonvideo-widget",
        title=f"{APP_NAME} Widget",
        description="Interactive NeonVideo.AI widget for launching jobs and tracking video generation",
        mime_type=WIDGET_MIME_TYPE,
        meta=WIDGET_META,
    )
    def neonvideo_widget() -> str:
        return widget_template

    @mcp.custom_route(OAUTH_PROTECTED_RESOURCE_PATH, methods=["GET"])
    async def oauth_protected_resource(request: Request) -> JSONResponse:
        """Protected Resource Metadata (RFC9728)."""
        if context.oauth_config is None:
            return JSONResponse(
                {"error": "OAuth metadata is not configured for this server."},
                status_code=404
            )

        return JSONResponse(
            get_protected_resource_metadata(context.oauth_config),
            headers={"Cache-Control": METADATA_CACHE_CONTROL}
        )

    @mcp.custom_route("/health", methods=["GET"])
    async def health(request: Request) -> JSONResponse:
        return JSONResponse({"status": "ok", "service": "neonvideo-mcp"})

    return mcp


def create_app(context: AppContext) -> Starlette:
    """
    Build the ASGI application.

    /mcp is served statelessly with JSON responses and guarded by
    OAuthMiddleware; the metadata and health routes are public.
    """
    mcp = create_mcp(context)
    return mcp.http_app(
        path=MCP_PATH,
        stateless_http=True,
        json_response=True,
        middleware=[
            Middleware(OAuthMiddleware, config=context.oauth_config, verifier=context.verifier),
        ],
    )


def run(host: Optional[str] = None, port: Optional[int] = None) -> None:
    """
    Run the server with uvicorn.

    Args:
        host: Bind address (defaults to HOST)
        port: Port (defaults to PORT)
    """
    settings = load_settings()
    setup_logging(settings.log_level)

    try:
        context = build_app_context(settings)
    except ConfigurationError as e:
        logger.error(f"Refusing to start: {e.message}")
        raise SystemExit(1) from e

    app = create_app(context)
    host = host or settings.host
    port = port or settings.port

    logger.info(f"{APP_NAME} MCP server listening on http://{host}:{port}{MCP_PATH}")
    uvicorn.run(app, host=host, port=port, log_level=settings.log_level.lower())


def main() -> None:
    run()


if __name__ == "__main__":
    # For local development: python -m neonvideo_mcp.main
    main()
