from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "server.yaml"


def load_config(path: Path) -> Dict[str, Any]:
    """Parse a YAML config file whose root is a mapping."""
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise FileNotFoundError(f"Azure DevOps MCP config not found at {path}") from None
    data = yaml.safe_load(text)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Config root must be a mapping, got {type(data).__name__} in {path}")
    return data


def resolve_config(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load the server config.

    An explicit path (argument or ADO_MCP_CONFIG) must exist; the bundled
    default is optional and yields an empty config when absent.
    """
    explicit = path or os.getenv("ADO_MCP_CONFIG", "").strip()
    if explicit:
        return load_config(Path(explicit))
    if DEFAULT_CONFIG_PATH.exists():
        return load_config(DEFAULT_CONFIG_PATH)
    return {}
