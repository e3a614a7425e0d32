"""
OAuth error types shared by the configuration resolver, the token verifier
and the authorization middleware.
"""

from typing import Any, Optional

MISSING_TOKEN = "missing_token"
INVALID_TOKEN = "invalid_token"
INSUFFICIENT_SCOPE = "insufficient_scope"
CONFIGURATION = "configuration"


class OAuthError(Exception):
    """
    Authorization failed.

    Attributes:
        message: Human-readable error message
        code: One of missing_token, invalid_token, insufficient_scope, configuration
        details: Underlying error or machine-readable payload (never shown to callers)
    """

    def __init__(self, message: str, code: str, details: Optional[Any] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details


class ConfigurationError(OAuthError):
    """Invalid OAuth configuration. Fatal at startup."""

    def __init__(self, message: str, field: str, details: Optional[Any] = None) -> None:
        super().__init__(message, CONFIGURATION, details)
        self.field = field
