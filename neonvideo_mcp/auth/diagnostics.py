"""
Diagnostics for rejected tokens

Reads claims from a token WITHOUT verifying it, purely so operators can see
why a token was rejected (wrong issuer, wrong audience, expired). Nothing in
here may be used to make an authorization decision; the middleware only
calls it after the verifier has already rejected the token.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

from jose import jwt, JWTError

logger = logging.getLogger(__name__)


def summarize_token(token: str) -> str:
    """Preview a token as its first 12 and last 8 characters."""
    if not token:
        return "<empty>"
    return f"{token[:12]}...{token[-8:]}"


@dataclass(frozen=True)
class UnverifiedTokenSummary:
    """Untrusted view of a rejected token, for log and error text only."""

    preview: str
    decodable: bool
    issuer: Optional[str] = None
    audience: Any = None
    expires_at: Optional[float] = None

    def describe(self) -> str:
        if not self.decodable:
            return f"token={self.preview}; iss=unknown; aud=unknown; exp=unknown"
        issuer = self.issuer if self.issuer is not None else "undefined"
        expires_at = self.expires_at if self.expires_at is not None else "undefined"
        return (
            f"token={self.preview}; iss={issuer}; "
            f"aud={json.dumps(self.audience, default=str)}; exp={expires_at}"
        )


def inspect_unverified_token(token: str) -> UnverifiedTokenSummary:
    """
    Decode a token's claims without checking its signature.

    Never raises: undecodable tokens produce a summary with decodable=False.
    """
    preview = summarize_token(token)
    try:
        claims = jwt.get_unverified_claims(token)
    except (JWTError, ValueError, TypeError) as e:
        logger.debug(f"Unable to decode rejected token {preview}: {e}")
        return UnverifiedTokenSummary(preview=preview, decodable=False)

    issuer = claims.get("iss")
    exp = claims.get("exp")
    return UnverifiedTokenSummary(
        preview=preview,
        decodable=True,
        issuer=issuer if isinstance(issuer, str) else None,
        audience=claims.get("aud"),
        expires_at=exp if isinstance(exp, (int, float)) and not isinstance(exp, bool) else None,
    )
