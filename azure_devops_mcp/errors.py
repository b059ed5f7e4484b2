from __future__ import annotations

from typing import Optional


class AzureDevOpsMcpError(Exception):
    """Base exception for all server errors."""
    pass


class ToolConfigurationError(AzureDevOpsMcpError):
    """Tool catalog is inconsistent (raised at startup)."""
    pass


class UnknownStatusError(AzureDevOpsMcpError, ValueError):
    """Pull request status token outside the supported set."""

    def __init__(self, status: str):
        self.status = status
        super().__init__(f"Unknown pull request status: {status}")


class NotFoundError(AzureDevOpsMcpError):
    """A single requested entity does not exist upstream."""
    pass


class UpstreamError(AzureDevOpsMcpError):
    """Azure DevOps answered with a non-success status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class AuthenticationError(AzureDevOpsMcpError):
    """No usable credential for Azure DevOps."""
    pass
