"""Exceptions raised by the Rally client and configuration layer."""
from typing import Optional


class RallyError(Exception):
    """Base class for Rally bridge errors."""


class RallyApiError(RallyError):
    """Raised when Rally reports errors inside an otherwise successful payload."""

    def __init__(
        self,
        message: str,
        errors: Optional[list[str]] = None,
        warnings: Optional[list[str]] = None,
    ):
        super().__init__(message)
        self.errors = errors or []
        self.warnings = warnings or []


class RallyResponseError(RallyError):
    """Raised when a Rally response does not have a recognisable shape."""

    def __init__(self, message: str, payload: object = None):
        super().__init__(message)
        self.payload = payload


class ConfigurationError(RallyError):
    """Raised when required settings are missing or malformed."""


class UnknownArtifactTypeError(RallyError, ValueError):
    """Raised for artifact types the client has no endpoint for."""

    def __init__(self, artifact_type: str, supported: list[str]):
        super().__init__(
            f"Unknown artifact type: {artifact_type}. Supported types: {', '.join(supported)}"
        )
        self.artifact_type = artifact_type
        self.supported = supported


class UnknownToolError(RallyError):
    """Raised when an MCP client calls a tool that is not registered."""

    def __init__(self, tool_name: str):
        super().__init__(f"Unknown tool: {tool_name}")
        self.tool_name = tool_name
