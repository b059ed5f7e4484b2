from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from .catalog import configure_all_tools
from .client import AzureDevOpsClientManager
from .errors import ToolConfigurationError

DEFAULT_SERVER_NAME = "Azure DevOps MCP Server"


def setup_logger(config: Dict[str, Any]) -> logging.Logger:
    logger = logging.getLogger("azure_devops_mcp")
    if logger.handlers:
        return logger
    server_cfg = config.get("server", {})
    level_name = str(os.getenv("ADO_MCP_LOG_LEVEL") or server_cfg.get("log_level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)
    logger.setLevel(level)
    # stderr: stdout carries the stdio transport
    handler = logging.StreamHandler()

    class StructuredFormatter(logging.Formatter):
        """Fills in the structured fields records may not carry and escapes the message."""

        def format(self, record: logging.LogRecord) -> str:
            record.json_message = json.dumps(record.getMessage(), ensure_ascii=False)[1:-1]
            if not hasattr(record, "tool"):
                record.tool = ""
            if not hasattr(record, "duration_ms"):
                record.duration_ms = ""
            return super().format(record)

    handler.setFormatter(StructuredFormatter(
        '{"ts":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s","tool":"%(tool)s",'
        '"duration_ms":"%(duration_ms)s","msg":"%(json_message)s"}'
    ))
    logger.addHandler(handler)
    logger.propagate = False
    return logger


@dataclass
class ServerBundle:
    mcp: FastMCP
    manager: AzureDevOpsClientManager
    config: Dict[str, Any]
    tool_names: List[str] = field(default_factory=list)


def resolve_organization(config: Dict[str, Any], organization: Optional[str] = None) -> str:
    org = (
        organization
        or os.getenv("ADO_MCP_ORGANIZATION", "").strip()
        or str(config.get("azure_devops", {}).get("organization") or "").strip()
    )
    if not org:
        raise ToolConfigurationError(
            "Azure DevOps organization is required (CLI argument, ADO_MCP_ORGANIZATION or azure_devops.organization)."
        )
    return org


def create_server(
    config: Dict[str, Any],
    organization: Optional[str] = None,
    manager: Optional[AzureDevOpsClientManager] = None,
    override: Optional[str] = None,
) -> ServerBundle:
    """
    Build the FastMCP server with every enabled tool registered.

    This is the single initialization phase: the disabled set is computed
    here and never changes afterwards.
    """
    logger = setup_logger(config)
    server_cfg = config.get("server", {})
    if manager is None:
        manager = AzureDevOpsClientManager(
            resolve_organization(config, organization),
            config=config.get("azure_devops", {}),
        )

    mcp = FastMCP(
        server_cfg.get("name", DEFAULT_SERVER_NAME),
        host=os.getenv("ADO_MCP_SERVER_HOST", server_cfg.get("host", "127.0.0.1")),
        port=int(os.getenv("ADO_MCP_SERVER_PORT", server_cfg.get("port", 9000))),
    )
    mode = str(config.get("tools", {}).get("mode", "allow")).strip().lower()
    tool_names = configure_all_tools(mcp, manager, mode=mode, override=override)
    logger.debug(f"Enabled tools: {', '.join(tool_names)}")
    return ServerBundle(mcp=mcp, manager=manager, config=config, tool_names=tool_names)
