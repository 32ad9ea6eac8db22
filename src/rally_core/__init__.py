"""Rally Core - field transformation, error classification and the Rally API client.

Modules:
- transformer: Rally <-> MCP field name conversion
- diagnostics: diagnostic records, transport failures and classifier state
- error_classifier: failure classification into the closed error taxonomy
- rally_client: async Rally WSAPI client
- queries: Rally query string construction from tool arguments
- schemas: tool argument validation
- config / security: settings, auth headers and log sanitization
"""

__version__ = "1.0.0"
