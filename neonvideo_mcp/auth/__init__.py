"""OAuth resource server: token verification and error types"""

from .errors import OAuthError, ConfigurationError

__all__ = [
    "OAuthError",
    "ConfigurationError",
]
