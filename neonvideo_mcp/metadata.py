"""
Protected Resource Metadata (RFC9728) and Bearer challenges (RFC6750)

The endpoint at /.well-known/oauth-protected-resource tells clients:
1. Which resource they are talking to
2. Which authorization server issues tokens for it
3. Which scopes are required and supported

The WWW-Authenticate challenge sent with every 401 points clients back at
that metadata document.
"""

import logging
from typing import Any, Dict, Optional
from urllib.parse import urljoin

from neonvideo_mcp.config import ResourceServerConfig, unique

logger = logging.getLogger(__name__)

OAUTH_PROTECTED_RESOURCE_PATH = "/.well-known/oauth-protected-resource"

# Shared caches may keep the document for 5 minutes and serve it stale for 10 more
METADATA_CACHE_CONTROL = "public, max-age=300, stale-while-revalidate=600"


def protected_resource_metadata_url(config: ResourceServerConfig) -> str:
    """Metadata URL resolved against the resource indicator."""
    return urljoin(config.resource_indicator, OAUTH_PROTECTED_RESOURCE_PATH)


def _sanitize(value: str) -> str:
    return value.replace('"', "'")


def build_bearer_challenge(
    config: ResourceServerConfig,
    error: Optional[str] = None,
    description: Optional[str] = None
) -> str:
    """
    Build a WWW-Authenticate header value.

    Format:
        Bearer authorization_uri="<metadata url>", realm="<resource>",
            scope="<required scopes>", error="<code>", error_description="<text>"

    scope, error and error_description are only present when they have a
    value. Double quotes inside values are replaced with single quotes.

    Args:
        config: Resource server configuration
        error: RFC6750 error code (invalid_request, invalid_token, insufficient_scope)
        description: Human-readable error description

    Returns:
        Challenge string
    """
    parts = [
        f'authorization_uri="{_sanitize(protected_resource_metadata_url(config))}"',
        f'realm="{_sanitize(config.resource_indicator)}"',
    ]

    if config.required_scopes:
        parts.append(f'scope="{_sanitize(" ".join(config.required_scopes))}"')

    if error:
        parts.append(f'error="{_sanitize(error)}"')

    if description:
        parts.append(f'error_description="{_sanitize(description)}"')

    return "Bearer " + ", ".join(parts)


def get_protected_resource_metadata(config: ResourceServerConfig) -> Dict[str, Any]:
    """
    Generate Protected Resource Metadata (RFC9728).

    Fields that are not configured are left out of the document.

    Args:
        config: Resource server configuration

    Returns:
        Metadata dict following RFC9728 format
    """
    metadata: Dict[str, Any] = {
        "resource": config.resource_indicator,
        "authorization_servers": [config.issuer],
    }

    if config.required_scopes:
        metadata["resource_scopes"] = list(config.required_scopes)

    supported_scopes = unique(config.required_scopes + config.optional_scopes)
    if supported_scopes:
        metadata["scopes_supported"] = list(supported_scopes)

    if config.authorization_endpoint:
        metadata["authorization_endpoint"] = config.authorization_endpoint

    if config.token_endpoint:
        metadata["token_endpoint"] = config.token_endpoint

    if config.registration_endpoint:
        metadata["registration_endpoint"] = config.registration_endpoint

    if config.resource_documentation:
        metadata["resource_documentation"] = config.resource_documentation

    logger.debug(f"Protected Resource Metadata: {metadata}")
    return metadata
