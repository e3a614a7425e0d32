"""
Authentication Middleware

This module provides:
1. The per-request authorization state machine (authorize_request)
2. 401 Unauthorized responses with an RFC6750 WWW-Authenticate challenge
3. An ASGI middleware that guards the MCP endpoint and stores the
   verified AuthInfo on request.state.auth
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Receive, Scope, Send

from neonvideo_mcp.auth.diagnostics import inspect_unverified_token
from neonvideo_mcp.auth.errors import (
    INSUFFICIENT_SCOPE,
    INVALID_TOKEN,
    MISSING_TOKEN,
    OAuthError,
)
from neonvideo_mcp.auth.token_verifier import AuthInfo, TokenVerifier
from neonvideo_mcp.config import ResourceServerConfig
from neonvideo_mcp.metadata import build_bearer_challenge

logger = logging.getLogger(__name__)

INVALID_REQUEST = "invalid_request"

MISSING_HEADER_DESCRIPTION = "Authorization header with a Bearer token is required."
WRONG_SCHEME_DESCRIPTION = "Authorization header must use the Bearer scheme."
EMPTY_TOKEN_DESCRIPTION = "Bearer token cannot be empty."


@dataclass(frozen=True)
class AuthorizationResult:
    """
    Outcome of authorize_request().

    PASS: allowed is True, auth_info is set when authorization is configured.
    REJECT: allowed is False with an RFC6750 error code and description.
    """

    allowed: bool
    auth_info: Optional[AuthInfo] = None
    error: Optional[str] = None
    description: Optional[str] = None

    @classmethod
    def passed(cls, auth_info: Optional[AuthInfo] = None) -> "AuthorizationResult":
        return cls(allowed=True, auth_info=auth_info)

    @classmethod
    def rejected(cls, error: str, description: str) -> "AuthorizationResult":
        return cls(allowed=False, error=error, description=description)


def split_authorization_header(authorization: str) -> Tuple[str, Optional[str]]:
    """
    Split an Authorization header into scheme and credentials.

    Returns:
        (scheme, token) where token is None when nothing follows the scheme
    """
    scheme, separator, rest = authorization.partition(" ")
    if not separator:
        return scheme, None
    return scheme, rest.strip()


def challenge_error_for(code: str) -> str:
    """Map a verifier error code to the challenge 'error' parameter."""
    if code == MISSING_TOKEN:
        return INVALID_REQUEST
    if code == INSUFFICIENT_SCOPE:
        return INSUFFICIENT_SCOPE
    return INVALID_TOKEN


def _describe_failure(error: OAuthError, token: str) -> str:
    if error.code == INSUFFICIENT_SCOPE:
        missing = (error.details or {}).get("missing_scopes") or []
        if missing:
            return f"Access token does not include required NeonVideo scopes: {' '.join(missing)}."
        return "Access token does not include required NeonVideo scopes."
    if error.code == MISSING_TOKEN:
        return "Access token is missing."

    summary = inspect_unverified_token(token).describe()
    logger.warning(f"OAuth verification failed: {error.message}; {summary}")
    return f"Access token could not be verified ({summary})."


async def authorize_request(
    authorization: Optional[str],
    config: Optional[ResourceServerConfig],
    verifier: TokenVerifier
) -> AuthorizationResult:
    """
    Decide whether a request may reach the MCP endpoint.

    Args:
        authorization: Authorization header value
        config: Resource server configuration, None when OAuth is disabled
        verifier: Token verifier

    Returns:
        AuthorizationResult (PASS or REJECT)
    """
    if config is None:
        return AuthorizationResult.passed()

    if not authorization:
        return AuthorizationResult.rejected(INVALID_REQUEST, MISSING_HEADER_DESCRIPTION)

    scheme, token = split_authorization_header(authorization)
    if scheme.lower() != "bearer" or token is None:
        return AuthorizationResult.rejected(INVALID_REQUEST, WRONG_SCHEME_DESCRIPTION)

    if not token:
        return AuthorizationResult.rejected(INVALID_REQUEST, EMPTY_TOKEN_DESCRIPTION)

    try:
        auth_info = await verifier.verify(token, config)
    except OAuthError as e:
        if e.code != INVALID_TOKEN:
            logger.warning(f"OAuth verification failed: {e.message}")
        return AuthorizationResult.rejected(challenge_error_for(e.code), _describe_failure(e, token))
    except Exception as e:
        logger.error(f"Unexpected error verifying OAuth access token: {e}", exc_info=True)
        return AuthorizationResult.rejected(INVALID_TOKEN, "Unable to verify access token.")

    logger.info(
        f"OAuth token verified for client={auth_info.client_id} "
        f"scopes={' '.join(auth_info.scopes)} expiresAt={auth_info.expires_at}"
    )
    return AuthorizationResult.passed(auth_info)


def create_401_response(
    config: Optional[ResourceServerConfig],
    error: Optional[str] = None,
    description: Optional[str] = None
) -> JSONResponse:
    """
    Create a 401 Unauthorized response.

    The WWW-Authenticate header is set whenever OAuth is configured; the
    body is {"error": <description>}.
    """
    headers = {}
    if config is not None:
        headers["WWW-Authenticate"] = build_bearer_challenge(config, error=error, description=description)

    return JSONResponse(
        {"error": description or "Authentication required."},
        status_code=401,
        headers=headers
    )


class OAuthMiddleware:
    """
    ASGI middleware enforcing bearer-token authorization on the MCP endpoint.

    Requests outside protected_prefix (e.g. the metadata document) pass
    through untouched. Rejected requests never reach the wrapped app.
    """

    def __init__(
        self,
        app: ASGIApp,
        config: Optional[ResourceServerConfig],
        verifier: TokenVerifier,
        protected_prefix: str = "/mcp"
    ):
        self.app = app
        self.config = config
        self.verifier = verifier
        self.protected_prefix = protected_prefix

    def _is_protected(self, path: str) -> bool:
        return path == self.protected_prefix or path.startswith(self.protected_prefix + "/")

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or self.config is None or not self._is_protected(scope.get("path", "")):
            await self.app(scope, receive, send)
            return

        request = Request(scope)
        authorization = request.headers.get("authorization")
        logger.debug(
            f"OAuth middleware processing {request.method} {request.url.path} "
            f"(auth header present: {bool(authorization)})"
        )

        result = await authorize_request(authorization, self.config, self.verifier)
        if not result.allowed:
            response = create_401_response(self.config, error=result.error, description=result.description)
            await response(scope, receive, send)
            return

        scope.setdefault("state", {})["auth"] = result.auth_info
        await self.app(scope, receive, send)
