"""HTTP middleware and logging setup"""

from .auth import OAuthMiddleware, authorize_request, create_401_response
from .logging import setup_logging

__all__ = ["OAuthMiddleware", "authorize_request", "create_401_response", "setup_logging"]
