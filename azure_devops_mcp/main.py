"""
Command line entry point.

    azure-devops-mcp <organization> [--transport stdio|http] [--config PATH]
"""
from __future__ import annotations

import argparse
import sys
from typing import List, Optional

import anyio
import uvicorn

from .config import resolve_config
from .server import ServerBundle, create_server


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="azure-devops-mcp", description="Azure DevOps MCP server")
    parser.add_argument("organization", nargs="?", help="Azure DevOps organization name")
    parser.add_argument("--transport", choices=["stdio", "http"], default="stdio")
    parser.add_argument("--config", help="Path to the YAML config (defaults to ADO_MCP_CONFIG)")
    return parser


async def serve_stdio(bundle: ServerBundle) -> None:
    try:
        await bundle.mcp.run_stdio_async()
    finally:
        await bundle.manager.aclose()


def serve_http(bundle: ServerBundle) -> None:
    from .http_app import create_app

    settings = bundle.mcp.settings
    app = create_app(bundle)
    print(f"Starting MCP server on http://{settings.host}:{settings.port}", file=sys.stderr)
    print(f"MCP endpoint: http://{settings.host}:{settings.port}/mcp", file=sys.stderr)
    print(f"Healthcheck: http://{settings.host}:{settings.port}/health", file=sys.stderr)
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=str(bundle.config.get("server", {}).get("log_level", "INFO")).lower(),
        server_header=False,
    )


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    try:
        config = resolve_config(args.config)
        bundle = create_server(config, organization=args.organization)
        if args.transport == "http":
            serve_http(bundle)
        else:
            anyio.run(serve_stdio, bundle)
    except KeyboardInterrupt:
        print("\nServer shutdown requested...", file=sys.stderr)
        sys.exit(0)
    except Exception as e:
        print(f"Failed to start MCP server: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
