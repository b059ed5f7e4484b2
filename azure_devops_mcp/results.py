"""
Uniform envelope for tool results.

Every handler funnels its upstream work through run_tool, which is the single
place where failures are caught: upstream, transport and translation errors
become one error-flagged text block instead of escaping to the transport.
"""
from __future__ import annotations

import json
import logging
import time
from typing import Any, Awaitable, Callable, Optional

from mcp.types import CallToolResult, TextContent

logger = logging.getLogger("azure_devops_mcp.tools")

Operation = Callable[[], Awaitable[Any]]


def serialize(payload: Any, indent: Optional[int] = None) -> str:
    if isinstance(payload, str):
        return payload
    return json.dumps(payload, indent=indent, ensure_ascii=False, default=str)


def text_result(payload: Any, indent: Optional[int] = None) -> CallToolResult:
    return CallToolResult(content=[TextContent(type="text", text=serialize(payload, indent))])


def error_result(message: str) -> CallToolResult:
    return CallToolResult(content=[TextContent(type="text", text=message)], isError=True)


async def run_tool(
    tool_name: str,
    operation: Operation,
    failure_message: str,
    context: Optional[str] = None,
    indent: Optional[int] = None,
) -> CallToolResult:
    """
    Await operation and wrap its outcome.

    failure_message is used when the exception carries no text; context, when
    given, prefixes the message (e.g. which item could not be read).
    """
    start = time.perf_counter()
    try:
        payload = await operation()
    except Exception as exc:
        duration_ms = round((time.perf_counter() - start) * 1000, 1)
        message = str(exc) or failure_message
        if context:
            message = f"{context}: {message}"
        logger.warning(
            f"Tool failed: {message}",
            extra={"tool": tool_name, "duration_ms": duration_ms},
        )
        return error_result(message)

    duration_ms = round((time.perf_counter() - start) * 1000, 1)
    logger.info("Tool succeeded", extra={"tool": tool_name, "duration_ms": duration_ms})
    return text_result(payload, indent)
