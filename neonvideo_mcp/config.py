"""
Configuration management for the NeonVideo MCP server

Two layers:
1. NeonVideoSettings - raw strings read from the environment (and .env)
2. ResourceServerConfig - the validated OAuth resource server configuration
   derived from those strings by resolve_resource_server_config()

Authorization is opt-in: when the issuer or the resource indicator is not
configured the resolver returns None and the server runs without OAuth.
Any other malformed value is fatal so the server never fails open.
"""

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple
from urllib.parse import urlsplit

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from neonvideo_mcp.auth.errors import ConfigurationError

logger = logging.getLogger(__name__)

APP_NAME = "NeonVideo.AI"

ISSUER_ENV = "NEONVIDEO_OAUTH_ISSUER_URL"
RESOURCE_ENV = "NEONVIDEO_OAUTH_RESOURCE"
JWKS_ENV = "NEONVIDEO_OAUTH_JWKS_URL"
AUTHORIZATION_ENDPOINT_ENV = "NEONVIDEO_OAUTH_AUTHORIZATION_ENDPOINT"
TOKEN_ENDPOINT_ENV = "NEONVIDEO_OAUTH_TOKEN_ENDPOINT"
REGISTRATION_ENDPOINT_ENV = "NEONVIDEO_OAUTH_REGISTRATION_ENDPOINT"
RESOURCE_DOCUMENTATION_ENV = "NEONVIDEO_OAUTH_RESOURCE_DOCUMENTATION"

JWKS_WELL_KNOWN_PATH = "/.well-known/jwks.json"

_SCOPE_SPLITTER = re.compile(r"[\s,]+")


class NeonVideoSettings(BaseSettings):
    """
    Server settings from environment variables.

    OAuth (all optional, authorization is enabled only when both
    NEONVIDEO_OAUTH_ISSUER_URL and NEONVIDEO_OAUTH_RESOURCE are set):
    - NEONVIDEO_OAUTH_ISSUER_URL: trusted token issuer
    - NEONVIDEO_OAUTH_RESOURCE: resource indicator of this server
    - NEONVIDEO_OAUTH_JWKS_URL: JWKS override (derived from issuer if unset)
    - NEONVIDEO_OAUTH_REQUIRED_SCOPES / NEONVIDEO_OAUTH_OPTIONAL_SCOPES
    - NEONVIDEO_OAUTH_AUDIENCE: expected 'aud' (defaults to the resource)

    Backend:
    - NEONVIDEO_API_BASE_URL, NEONVIDEO_API_TIMEOUT_MS
    - NEONVIDEO_AUTH_TOKEN / NEONVIDEO_AUTH_COOKIE: fallback credentials
    """

    # Only the aliases below are environment sources; field names are not
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    oauth_issuer_url: Optional[str] = Field(alias=ISSUER_ENV, default=None)
    oauth_resource: Optional[str] = Field(alias=RESOURCE_ENV, default=None)
    oauth_jwks_url: Optional[str] = Field(alias=JWKS_ENV, default=None)
    oauth_required_scopes: Optional[str] = Field(alias="NEONVIDEO_OAUTH_REQUIRED_SCOPES", default=None)
    oauth_optional_scopes: Optional[str] = Field(alias="NEONVIDEO_OAUTH_OPTIONAL_SCOPES", default=None)
    oauth_authorization_endpoint: Optional[str] = Field(alias=AUTHORIZATION_ENDPOINT_ENV, default=None)
    oauth_token_endpoint: Optional[str] = Field(alias=TOKEN_ENDPOINT_ENV, default=None)
    oauth_registration_endpoint: Optional[str] = Field(alias=REGISTRATION_ENDPOINT_ENV, default=None)
    oauth_resource_documentation: Optional[str] = Field(alias=RESOURCE_DOCUMENTATION_ENV, default=None)
    oauth_audience: Optional[str] = Field(alias="NEONVIDEO_OAUTH_AUDIENCE", default=None)
    jwks_cache_ttl: int = Field(alias="NEONVIDEO_JWKS_CACHE_TTL", default=600)

    auth_token: Optional[str] = Field(alias="NEONVIDEO_AUTH_TOKEN", default=None)
    auth_cookie: Optional[str] = Field(alias="NEONVIDEO_AUTH_COOKIE", default=None)
    api_base_url: str = Field(alias="NEONVIDEO_API_BASE_URL", default="https://neonvideo.ai")
    api_timeout_ms: int = Field(alias="NEONVIDEO_API_TIMEOUT_MS", default=60000)

    host: str = Field(alias="HOST", default="0.0.0.0")
    port: int = Field(alias="PORT", default=3000)
    log_level: str = Field(alias="LOG_LEVEL", default="INFO")


@dataclass(frozen=True)
class ResourceServerConfig:
    """
    Validated OAuth 2.0 resource server configuration.

    URL fields keep the caller-provided representation (trimmed) so that
    the issuer comparison against the 'iss' claim is an exact match.

    Attributes:
        issuer: Trusted token issuer
        jwks_uri: Where signing keys are published
        resource_indicator: Canonical identifier of this protected resource
        required_scopes: Scopes every token must carry
        optional_scopes: Scopes advertised as supported but not enforced
        authorization_endpoint: Published in metadata when set
        token_endpoint: Published in metadata when set
        registration_endpoint: Published in metadata when set
        resource_documentation: Published in metadata when set
        audience: Expected 'aud' claim, overrides resource_indicator
    """

    issuer: str
    jwks_uri: str
    resource_indicator: str
    required_scopes: Tuple[str, ...] = ()
    optional_scopes: Tuple[str, ...] = ()
    authorization_endpoint: Optional[str] = None
    token_endpoint: Optional[str] = None
    registration_endpoint: Optional[str] = None
    resource_documentation: Optional[str] = None
    audience: Optional[str] = None

    @property
    def expected_audience(self) -> str:
        return self.audience or self.resource_indicator


def unique(values: Iterable[str]) -> Tuple[str, ...]:
    """Deduplicate while keeping first-seen order."""
    return tuple(dict.fromkeys(values))


def normalize_scopes(value: Optional[str]) -> Tuple[str, ...]:
    """Split a scope list on whitespace/commas, dropping empty entries."""
    if not value:
        return ()
    return unique(scope.strip() for scope in _SCOPE_SPLITTER.split(value) if scope.strip())


def ensure_url(value: str, field_name: str) -> str:
    """
    Validate an absolute URL and return it trimmed.

    Args:
        value: Raw URL string
        field_name: Environment variable name, reported on failure

    Returns:
        The trimmed URL, exactly as supplied otherwise

    Raises:
        ConfigurationError: If the URL lacks a scheme or hostname or cannot be parsed
    """
    trimmed = value.strip()
    try:
        parsed = urlsplit(trimmed)
        # Accessing .port validates the port component
        parsed.port
        if not parsed.scheme or not parsed.hostname:
            raise ValueError("URL must include protocol and hostname")
    except ValueError as e:
        raise ConfigurationError(f"Invalid URL for {field_name}: {value}", field_name, e) from e
    return trimmed


def _optional_url(value: Optional[str], field_name: str) -> Optional[str]:
    if value is None or not value.strip():
        return None
    return ensure_url(value, field_name)


def resolve_jwks_uri(issuer: str, override: Optional[str] = None) -> str:
    """Use the JWKS override when given, else {issuer}/.well-known/jwks.json."""
    if override and override.strip():
        return ensure_url(override, JWKS_ENV)
    return ensure_url(issuer, ISSUER_ENV).rstrip("/") + JWKS_WELL_KNOWN_PATH


def resolve_resource_server_config(settings: NeonVideoSettings) -> Optional[ResourceServerConfig]:
    """
    Derive the resource server configuration from settings.

    Args:
        settings: Raw settings (usually from the environment)

    Returns:
        ResourceServerConfig, or None when authorization is not configured

    Raises:
        ConfigurationError: If any configured URL is malformed
    """
    issuer = (settings.oauth_issuer_url or "").strip()
    resource = (settings.oauth_resource or "").strip()

    if not issuer or not resource:
        return None

    audience = (settings.oauth_audience or "").strip()

    return ResourceServerConfig(
        issuer=ensure_url(issuer, ISSUER_ENV),
        jwks_uri=resolve_jwks_uri(issuer, settings.oauth_jwks_url),
        resource_indicator=ensure_url(resource, RESOURCE_ENV),
        required_scopes=normalize_scopes(settings.oauth_required_scopes),
        optional_scopes=normalize_scopes(settings.oauth_optional_scopes),
        authorization_endpoint=_optional_url(settings.oauth_authorization_endpoint, AUTHORIZATION_ENDPOINT_ENV),
        token_endpoint=_optional_url(settings.oauth_token_endpoint, TOKEN_ENDPOINT_ENV),
        registration_endpoint=_optional_url(settings.oauth_registration_endpoint, REGISTRATION_ENDPOINT_ENV),
        resource_documentation=_optional_url(settings.oauth_resource_documentation, RESOURCE_DOCUMENTATION_ENV),
        audience=audience or None,
    )


def load_settings() -> NeonVideoSettings:
    """Load settings from .env and the environment."""
    load_dotenv()
    return NeonVideoSettings()
