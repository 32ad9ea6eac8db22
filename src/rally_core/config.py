"""Application configuration using environment-driven settings.

Centralizes:
- Rally connection (base URL, API key, default workspace/project)
- integration headers reported to Rally
- HTTP timeout
- logging and diagnostics options
"""
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

WSAPI_PATH = "/slm/webservice/v2.0"


class Settings(BaseSettings):
    app_name: str = "rally-mcp"
    environment: str = "development"

    # Rally connection
    rally_api_key: Optional[str] = None
    rally_base_url: str = "https://rally1.rallydev.com"
    rally_workspace: Optional[str] = None
    rally_project: Optional[str] = None

    # Integration headers
    rally_integration_name: str = "mcp-rally"
    rally_integration_vendor: str = "AI-Assistant"
    rally_integration_version: str = "1.0.0"

    # HTTP
    request_timeout_seconds: float = 30.0

    # Logging / diagnostics
    log_level: str = "INFO"
    error_history_size: int = 100
    include_stack_traces: bool = False

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @property
    def api_base_url(self) -> str:
        """Root of the Rally Web Services API."""
        return f"{self.rally_base_url.rstrip('/')}{WSAPI_PATH}"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()
