"""Tests for API key validation, auth headers and log sanitization."""
import pytest

from rally_core.config import Settings
from rally_core.exceptions import ConfigurationError
from rally_core.security import get_auth_headers, sanitize_log_data, validate_api_key


class TestValidateApiKey:
    """Test API key checks."""

    def test_valid_key(self):
        assert validate_api_key("_abc123DEF-456")

    @pytest.mark.parametrize("key", [None, "", "short", "has spaces in it", "semi;colon;key"])
    def test_invalid_keys(self, key):
        with pytest.raises(ConfigurationError):
            validate_api_key(key)


class TestAuthHeaders:
    """Test Rally request headers."""

    def test_headers_from_settings(self):
        settings = Settings(rally_api_key="_abc123DEF-456")
        headers = get_auth_headers(settings)

        assert headers["zsessionid"] == "_abc123DEF-456"
        assert headers["X-RallyIntegrationName"] == settings.rally_integration_name
        assert headers["Accept"] == "application/json"

    def test_explicit_key_wins(self):
        headers = get_auth_headers(Settings(rally_api_key="_abc123DEF-456"), api_key="_other-key-789")
        assert headers["zsessionid"] == "_other-key-789"

    def test_missing_key(self):
        with pytest.raises(ConfigurationError):
            get_auth_headers(Settings(rally_api_key=None))


class TestSanitizeLogData:
    """Test redaction of credential-bearing keys."""

    def test_nested_redaction(self):
        data = {
            "zsessionid": "secret",
            "headers": {"Authorization": "Bearer x", "Accept": "application/json"},
            "items": [{"api_key": "k"}, ("token", 1)],
            "name": "Login page",
        }

        assert sanitize_log_data(data) == {
            "zsessionid": "[REDACTED]",
            "headers": {"Authorization": "[REDACTED]", "Accept": "application/json"},
            "items": [{"api_key": "[REDACTED]"}, ["token", 1]],
            "name": "Login page",
        }

    def test_input_not_mutated(self):
        data = {"password": "p"}
        sanitize_log_data(data)
        assert data == {"password": "p"}

    def test_primitives(self):
        assert sanitize_log_data("text") == "text"
        assert sanitize_log_data(None) is None


class TestSettings:
    """Test derived configuration values."""

    def test_api_base_url(self):
        settings = Settings(rally_base_url="https://rally1.rallydev.com/")
        assert settings.api_base_url == "https://rally1.rallydev.com/slm/webservice/v2.0"
