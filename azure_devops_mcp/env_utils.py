"""
Environment helpers shared by the enablement gate and the HTTP transport.
"""
from __future__ import annotations

import os
from typing import List

ENABLED_TOOLS_ENV = "ADO_MCP_ENABLED_TOOLS"
DISABLED_TOOLS_ENV = "ADO_MCP_DISABLED_TOOLS"


def is_production_env() -> bool:
    """
    True when ENVIRONMENT or APP_ENV is "production" (case-insensitive).
    """
    env_vars = [
        os.getenv("ENVIRONMENT", ""),
        os.getenv("APP_ENV", ""),
    ]

    for env_val in env_vars:
        if env_val.strip().lower() == "production":
            return True

    return False


def split_tokens(value: str) -> List[str]:
    """
    Split a comma-separated override into trimmed tokens.

    Empty tokens are kept so callers see exactly what was configured;
    "" splits into [""].
    """
    return [token.strip() for token in (value or "").split(",")]


def tool_override(mode: str) -> str:
    """Raw override string for the given enablement mode."""
    name = DISABLED_TOOLS_ENV if mode == "deny" else ENABLED_TOOLS_ENV
    return os.getenv(name, "")
