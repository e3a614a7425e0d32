"""
JWT Access Token Verifier

This module validates bearer tokens presented to the MCP endpoint, ensuring:
- Valid signature (using the issuer's remote JWKS)
- Exact issuer match
- Correct audience (the configured audience, else the resource indicator)
- Not expired
- All required scopes present

Successful verification yields a fresh AuthInfo; nothing is cached besides
the signing keys held by the KeySetCache.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from jose import jwt
from jose.exceptions import JOSEError

from neonvideo_mcp.auth.errors import (
    INSUFFICIENT_SCOPE,
    INVALID_TOKEN,
    MISSING_TOKEN,
    OAuthError,
)
from neonvideo_mcp.cache.key_set_cache import KeySetCache, KeySetError
from neonvideo_mcp.config import ResourceServerConfig, normalize_scopes, unique

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT = "unknown-client"

# Issuers disagree on where scopes live, so all of these are consulted in order
SCOPE_CLAIMS = ("scope", "scopes", "scp", "permissions", "roles")
CLIENT_ID_CLAIMS = ("azp", "client_id", "clientId")

DEFAULT_ALGORITHMS = ("RS256", "RS384", "RS512", "ES256", "ES384", "ES512")


@dataclass(frozen=True)
class AuthInfo:
    """
    Identity attached to a request after successful verification.

    Attributes:
        token: Raw bearer token
        client_id: From azp/client_id/clientId, else "unknown-client"
        scopes: Granted scopes, deduplicated in first-seen order
        expires_at: 'exp' claim (epoch seconds) when numeric
        resource: Resource indicator the token was accepted for
        extra: {"claims": <decoded claims>, "subject": <sub>} (subject only when present)
    """

    token: str
    client_id: str
    scopes: Tuple[str, ...]
    resource: str
    expires_at: Optional[int] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def subject(self) -> Optional[str]:
        return self.extra.get("subject")

    def has_scope(self, required_scope: str) -> bool:
        """Check if token has required scope."""
        return required_scope in self.scopes


def _scopes_from_claim(value: Any) -> List[str]:
    if isinstance(value, str):
        return list(normalize_scopes(value))
    if isinstance(value, (list, tuple)):
        return [item.strip() for item in value if isinstance(item, str) and item.strip()]
    return []


def extract_scopes(claims: Dict[str, Any]) -> Tuple[str, ...]:
    """
    Extract scopes from JWT claims.

    Every claim in SCOPE_CLAIMS contributes: strings are split on
    whitespace/commas, sequences contribute their string elements.

    Args:
        claims: JWT claims dict

    Returns:
        Union of all scopes, deduplicated, first-seen order
    """
    collected: List[str] = []
    for claim_name in SCOPE_CLAIMS:
        collected.extend(_scopes_from_claim(claims.get(claim_name)))
    return unique(collected)


def resolve_client_id(claims: Dict[str, Any]) -> str:
    for claim_name in CLIENT_ID_CLAIMS:
        candidate = claims.get(claim_name)
        if isinstance(candidate, str) and candidate.strip():
            return candidate.strip()
    return UNKNOWN_CLIENT


def missing_scopes(required: Sequence[str], granted: Sequence[str]) -> List[str]:
    return [scope for scope in required if scope not in granted]


def _expires_at(claims: Dict[str, Any]) -> Optional[int]:
    exp = claims.get("exp")
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        return None
    return int(exp)


class TokenVerifier:
    """
    Verifies access tokens against a resource server configuration.

    The verifier:
    1. Resolves the signing key through the KeySetCache
    2. Validates signature, issuer, audience and expiry
    3. Extracts scopes and client identity
    4. Enforces required scopes
    """

    def __init__(self, key_sets: KeySetCache):
        self.key_sets = key_sets

    async def verify(self, token: str, config: ResourceServerConfig) -> AuthInfo:
        """
        Verify a bearer token.

        Args:
            token: Raw bearer token
            config: Resource server configuration

        Returns:
            AuthInfo for the token

        Raises:
            OAuthError: missing_token, invalid_token or insufficient_scope
        """
        if not token or not token.strip():
            raise OAuthError("Missing access token", MISSING_TOKEN)

        key_set = self.key_sets.get(config.jwks_uri)

        try:
            signing_key = await key_set.get_signing_key(token)
            algorithms = [signing_key["alg"]] if signing_key.get("alg") else list(DEFAULT_ALGORITHMS)
            claims = jwt.decode(
                token,
                signing_key,
                algorithms=algorithms,
                audience=config.expected_audience,
                issuer=config.issuer,
                options={
                    "verify_exp": True,
                    "verify_aud": True,
                    "verify_iss": True,
                    "require_aud": True,
                    "require_iss": True,
                },
            )
        except (KeySetError, JOSEError) as e:
            logger.debug(f"Token verification failed: {e}")
            raise OAuthError("Invalid access token", INVALID_TOKEN, e) from e

        scopes = extract_scopes(claims)

        if config.required_scopes:
            missing = missing_scopes(config.required_scopes, scopes)
            if missing:
                logger.warning(f"Token missing required scopes: {missing}. Has: {list(scopes)}")
                raise OAuthError(
                    f"Access token is missing required scope(s): {', '.join(missing)}",
                    INSUFFICIENT_SCOPE,
                    {"missing_scopes": missing},
                )

        extra: Dict[str, Any] = {"claims": claims}
        if claims.get("sub"):
            extra["subject"] = claims["sub"]

        return AuthInfo(
            token=token,
            client_id=resolve_client_id(claims),
            scopes=scopes,
            resource=config.resource_indicator,
            expires_at=_expires_at(claims),
            extra=extra,
        )
