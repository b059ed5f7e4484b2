"""
FastAPI app for the streamable HTTP transport.

- Bearer token auth on /mcp (ADO_MCP_SERVER_TOKEN, mandatory in production)
- MCP streamable HTTP endpoint under /mcp
- Healthcheck under /health
- Tool discovery under /mcp/discovery
"""
from __future__ import annotations

import hashlib
import hmac
import logging
import os
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable

from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from .env_utils import is_production_env
from .server import ServerBundle

logger = logging.getLogger("azure_devops_mcp.http_app")

PUBLIC_PATHS = ("/health", "/mcp/discovery")


def _unauthorized(message: str) -> JSONResponse:
    return JSONResponse(
        {"error": "unauthorized", "message": message},
        status_code=status.HTTP_401_UNAUTHORIZED,
        headers={"WWW-Authenticate": "Bearer"},
    )


class BearerTokenAuthMiddleware(BaseHTTPMiddleware):
    """
    Guards the MCP endpoint with a static bearer token.

    Without a configured token the endpoint is open, except in production
    where it answers 503 until ADO_MCP_SERVER_TOKEN is set.
    """

    def __init__(self, app: ASGIApp, expected_token: str | None = None):
        super().__init__(app)
        if expected_token is None:
            expected_token = os.getenv("ADO_MCP_SERVER_TOKEN", "")
        self.expected_token = expected_token.strip()

    def requires_auth(self, path: str) -> bool:
        return path.startswith("/mcp") and path not in PUBLIC_PATHS

    def rejection(self, authorization: str) -> str | None:
        """Reason to reject the given Authorization header, or None to let it through."""
        scheme, _, presented = authorization.partition(" ")
        if scheme != "Bearer" or not presented:
            return "Missing or invalid Authorization header"
        if not hmac.compare_digest(presented.encode("utf-8"), self.expected_token.encode("utf-8")):
            return "Invalid token"
        return None

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if not self.requires_auth(request.url.path):
            return await call_next(request)

        if not self.expected_token:
            if is_production_env():
                logger.error("ADO_MCP_SERVER_TOKEN not set in production, refusing MCP traffic")
                return JSONResponse(
                    {"error": "server_error", "message": "ADO_MCP_SERVER_TOKEN not configured"},
                    status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                )
            return await call_next(request)

        reason = self.rejection(request.headers.get("authorization", ""))
        if reason is not None:
            logger.warning(f"Rejected {request.method} {request.url.path}: {reason}")
            return _unauthorized(reason)
        return await call_next(request)


def compute_tools_hash(tool_names: list[str]) -> str:
    """SHA-256 over the sorted tool names, one per line."""
    content = "\n".join(sorted(tool_names))
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def create_app(bundle: ServerBundle, expected_token: str | None = None) -> FastAPI:
    mcp = bundle.mcp
    # builds the session manager as a side effect, so it must precede lifespan use
    mcp_asgi = mcp.streamable_http_app()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        try:
            async with mcp.session_manager.run():
                yield
        finally:
            await bundle.manager.aclose()

    app = FastAPI(
        title=mcp.name,
        description="MCP tools for Azure DevOps repositories, pull requests and search",
        lifespan=lifespan,
    )
    app.add_middleware(BearerTokenAuthMiddleware, expected_token=expected_token)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {"ok": True, "status": "healthy", "tool_count": len(bundle.tool_names)}

    @app.get("/mcp/discovery")
    async def discovery() -> dict[str, Any]:
        tool_names = sorted(bundle.tool_names)
        return {
            "server": mcp.name,
            "transport": "streamable-http",
            "endpoint": "/mcp",
            "tools": [{"name": name} for name in tool_names],
            "tool_count": len(tool_names),
            "tools_hash": compute_tools_hash(tool_names),
        }

    # FastMCP serves its endpoint at /mcp inside its own app
    app.mount("/", mcp_asgi)
    return app
