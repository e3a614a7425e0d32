"""
Application context

Builds the long-lived objects shared by every request from the loaded
settings: resource server config, JWKS caches, token verifier, NeonVideo
client and action dispatcher.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from neonvideo_mcp.actions.dispatcher import ActionDispatcher
from neonvideo_mcp.auth.errors import ConfigurationError
from neonvideo_mcp.auth.token_verifier import TokenVerifier
from neonvideo_mcp.backends.client import NeonVideoClient
from neonvideo_mcp.cache.key_set_cache import KeySetCache
from neonvideo_mcp.config import NeonVideoSettings, ResourceServerConfig, resolve_resource_server_config
from neonvideo_mcp.metadata import protected_resource_metadata_url

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    settings: NeonVideoSettings
    oauth_config: Optional[ResourceServerConfig]
    key_sets: KeySetCache
    verifier: TokenVerifier
    client: NeonVideoClient
    dispatcher: ActionDispatcher

    @property
    def oauth_enabled(self) -> bool:
        return self.oauth_config is not None


def build_app_context(
    settings: NeonVideoSettings,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> AppContext:
    """
    Wire up the server components.

    Args:
        settings: Loaded settings
        transport: Optional httpx transport shared by the JWKS and API clients (tests)

    Returns:
        AppContext

    Raises:
        ConfigurationError: If OAuth settings are present but malformed
    """
    try:
        oauth_config = resolve_resource_server_config(settings)
    except ConfigurationError as e:
        logger.error(f"Invalid OAuth configuration ({e.field}): {e.message}")
        raise

    if oauth_config is None:
        logger.warning(
            "OAuth is not configured. Set NEONVIDEO_OAUTH_* environment variables "
            "to enable authorization checks."
        )
    else:
        logger.info(f"OAuth enabled: issuer={oauth_config.issuer} resource={oauth_config.resource_indicator}")
        logger.info(f"OAuth protected resource metadata: {protected_resource_metadata_url(oauth_config)}")

    key_sets = KeySetCache(cache_ttl=settings.jwks_cache_ttl, transport=transport)
    verifier = TokenVerifier(key_sets)
    client = NeonVideoClient(
        base_url=settings.api_base_url,
        timeout_ms=settings.api_timeout_ms,
        transport=transport,
    )
    dispatcher = ActionDispatcher(
        client,
        oauth_config=oauth_config,
        default_auth_token=settings.auth_token,
        default_auth_cookie=settings.auth_cookie,
    )

    return AppContext(
        settings=settings,
        oauth_config=oauth_config,
        key_sets=key_sets,
        verifier=verifier,
        client=client,
        dispatcher=dispatcher,
    )
