"""API key validation, Rally auth headers and log sanitization."""
import re
from typing import Any, Optional

from .config import Settings
from .exceptions import ConfigurationError

API_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
MIN_API_KEY_LENGTH = 10

SENSITIVE_FIELDS = (
    "authorization",
    "apikey",
    "api_key",
    "api-key",
    "password",
    "token",
    "secret",
    "zsessionid",
    "cookie",
)

REDACTED = "[REDACTED]"


def validate_api_key(api_key: Optional[str]) -> bool:
    """Check that a Rally API key is present and well formed.

    Raises:
        ConfigurationError: If the key is missing, too short or has invalid characters
    """
    if not api_key:
        raise ConfigurationError("RALLY_API_KEY environment variable is required but not set")

    if len(api_key) < MIN_API_KEY_LENGTH:
        raise ConfigurationError("RALLY_API_KEY appears to be invalid (too short)")

    if not API_KEY_PATTERN.match(api_key):
        raise ConfigurationError("RALLY_API_KEY contains invalid characters")

    return True


def get_auth_headers(settings: Settings, api_key: Optional[str] = None) -> dict[str, str]:
    """Build the headers Rally expects on every WSAPI request."""
    key = api_key or settings.rally_api_key
    if not key:
        raise ConfigurationError(
            "API key not available. Provide an API key or set the RALLY_API_KEY environment variable."
        )

    return {
        "zsessionid": key,
        "X-RallyIntegrationName": settings.rally_integration_name,
        "X-RallyIntegrationVendor": settings.rally_integration_vendor,
        "X-RallyIntegrationVersion": settings.rally_integration_version,
        "Content-Type": "application/json",
        "Accept": "application/json",
    }


def _is_sensitive(key: Any) -> bool:
    lowered = str(key).lower()
    return any(field in lowered for field in SENSITIVE_FIELDS)


def sanitize_log_data(data: Any) -> Any:
    """Return a copy of `data` with credential-bearing values redacted."""
    if isinstance(data, dict):
        return {
            key: REDACTED if _is_sensitive(key) else sanitize_log_data(value)
            for key, value in data.items()
        }

    if isinstance(data, (list, tuple)):
        return [sanitize_log_data(item) for item in data]

    return data
