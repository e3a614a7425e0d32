"""
Token Verifier Tests

Tests for:
- Signature, issuer, audience and expiry validation with real RS256 tokens
- Scope extraction across claim conventions
- Required scope enforcement
- Client id resolution
"""

import base64
import json
import time
from dataclasses import replace

import httpx
import pytest

from conftest import JWKS_URI, KID, RESOURCE, RecordingTransport
from neonvideo_mcp.auth.errors import INSUFFICIENT_SCOPE, INVALID_TOKEN, MISSING_TOKEN, OAuthError
from neonvideo_mcp.auth.token_verifier import TokenVerifier, extract_scopes, resolve_client_id
from neonvideo_mcp.cache import KeySetCache


@pytest.fixture
def verifier(jwks_transport):
    return TokenVerifier(KeySetCache(transport=jwks_transport))


class TestTokenVerifier:
    """Test access token verification"""

    @pytest.mark.asyncio
    async def test_valid_token(self, verifier, oauth_config, make_token):
        """Test a valid token produces AuthInfo"""
        token = make_token()
        auth_info = await verifier.verify(token, oauth_config)

        assert auth_info.token == token
        assert auth_info.client_id == "chatgpt-connector"
        assert auth_info.scopes == ("videos:write", "profile")
        assert auth_info.resource == RESOURCE
        assert auth_info.subject == "user-123"
        assert auth_info.extra["claims"]["sub"] == "user-123"
        assert isinstance(auth_info.expires_at, int)
        assert auth_info.has_scope("videos:write")

    @pytest.mark.asyncio
    async def test_audience_list(self, verifier, oauth_config, make_token):
        """Test the resource may be one of several audiences"""
        token = make_token({"aud": ["other-api", RESOURCE]})
        auth_info = await verifier.verify(token, oauth_config)
        assert auth_info.client_id == "chatgpt-connector"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("token", ["", "   "])
    async def test_missing_token(self, verifier, oauth_config, token):
        """Test empty tokens are missing_token"""
        with pytest.raises(OAuthError) as exc_info:
            await verifier.verify(token, oauth_config)
        assert exc_info.value.code == MISSING_TOKEN

    @pytest.mark.asyncio
    async def test_expired_token(self, verifier, oauth_config, make_token):
        """Test expired tokens are rejected"""
        token = make_token({"exp": int(time.time()) - 60})
        with pytest.raises(OAuthError) as exc_info:
            await verifier.verify(token, oauth_config)
        assert exc_info.value.code == INVALID_TOKEN

    @pytest.mark.asyncio
    async def test_wrong_issuer(self, verifier, oauth_config, make_token):
        """Test tokens from another issuer are rejected"""
        with pytest.raises(OAuthError) as exc_info:
            await verifier.verify(make_token({"iss": "https://evil.example.com"}), oauth_config)
        assert exc_info.value.code == INVALID_TOKEN

    @pytest.mark.asyncio
    async def test_wrong_audience(self, verifier, oauth_config, make_token):
        """Test tokens for another resource are rejected"""
        with pytest.raises(OAuthError) as exc_info:
            await verifier.verify(make_token({"aud": "https://other.example.com"}), oauth_config)
        assert exc_info.value.code == INVALID_TOKEN

    @pytest.mark.asyncio
    async def test_missing_audience(self, verifier, oauth_config, make_token):
        """Test tokens without an audience are rejected"""
        with pytest.raises(OAuthError) as exc_info:
            await verifier.verify(make_token(drop=("aud",)), oauth_config)
        assert exc_info.value.code == INVALID_TOKEN

    @pytest.mark.asyncio
    async def test_configured_audience(self, verifier, oauth_config, make_token):
        """Test an explicit audience replaces the resource indicator"""
        config = replace(oauth_config, audience="api://neonvideo")
        auth_info = await verifier.verify(make_token({"aud": "api://neonvideo"}), config)
        assert auth_info.resource == RESOURCE

        with pytest.raises(OAuthError):
            await verifier.verify(make_token(), config)

    @pytest.mark.asyncio
    async def test_bad_signature(self, verifier, oauth_config, make_token, other_rsa_key):
        """Test a token signed by an unpublished key with a known kid is rejected"""
        with pytest.raises(OAuthError) as exc_info:
            await verifier.verify(make_token(key=other_rsa_key), oauth_config)
        assert exc_info.value.code == INVALID_TOKEN

    @pytest.mark.asyncio
    async def test_garbage_token(self, verifier, oauth_config):
        """Test a non-JWT token is invalid_token"""
        with pytest.raises(OAuthError) as exc_info:
            await verifier.verify("definitely-not-a-jwt", oauth_config)
        assert exc_info.value.code == INVALID_TOKEN

    @pytest.mark.asyncio
    async def test_algorithm_mismatching_key_type(self, jwks, oauth_config, make_token):
        """Test an EC algorithm header against an RSA key without 'alg' is invalid_token"""
        published = {"keys": [{name: value for name, value in key.items() if name != "alg"} for key in jwks["keys"]]}
        transport = RecordingTransport(lambda request: httpx.Response(200, json=published))
        verifier = TokenVerifier(KeySetCache(transport=transport))

        header = base64.urlsafe_b64encode(json.dumps({"alg": "ES256", "kid": KID}).encode()).rstrip(b"=").decode()
        _, payload, signature = make_token().split(".")
        forged = f"{header}.{payload}.{signature}"

        with pytest.raises(OAuthError) as exc_info:
            await verifier.verify(forged, oauth_config)
        assert exc_info.value.code == INVALID_TOKEN
        assert transport.count(JWKS_URI) == 1

    @pytest.mark.asyncio
    async def test_insufficient_scope(self, verifier, oauth_config, make_token):
        """Test missing required scopes are reported by name"""
        config = replace(oauth_config, required_scopes=("videos:write", "videos:admin"))
        with pytest.raises(OAuthError) as exc_info:
            await verifier.verify(make_token(), config)

        assert exc_info.value.code == INSUFFICIENT_SCOPE
        assert exc_info.value.details == {"missing_scopes": ["videos:admin"]}
        assert "videos:admin" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_no_required_scopes(self, verifier, oauth_config, make_token):
        """Test tokens without scopes pass when none are required"""
        config = replace(oauth_config, required_scopes=())
        auth_info = await verifier.verify(make_token(drop=("scope",)), config)
        assert auth_info.scopes == ()

    @pytest.mark.asyncio
    async def test_key_sets_shared(self, jwks_transport, oauth_config, make_token):
        """Test verifications share one JWKS fetch"""
        verifier = TokenVerifier(KeySetCache(transport=jwks_transport))
        await verifier.verify(make_token(), oauth_config)
        await verifier.verify(make_token(), oauth_config)
        assert jwks_transport.count(oauth_config.jwks_uri) == 1


class TestScopeExtraction:
    """Test scope extraction from claims"""

    def test_space_separated(self):
        assert extract_scopes({"scope": "a b  c"}) == ("a", "b", "c")

    def test_comma_separated(self):
        assert extract_scopes({"scope": "a,b, c"}) == ("a", "b", "c")

    def test_union_across_claims(self):
        """Test every scope claim contributes, deduplicated in order"""
        claims = {
            "scope": "a b",
            "scopes": ["b", "c"],
            "scp": ["d", " ", 5],
            "permissions": "e",
            "roles": ["a", "f"],
        }
        assert extract_scopes(claims) == ("a", "b", "c", "d", "e", "f")

    def test_no_scopes(self):
        assert extract_scopes({"sub": "x"}) == ()


class TestClientId:
    """Test client identity resolution"""

    def test_precedence(self):
        assert resolve_client_id({"azp": "one", "client_id": "two"}) == "one"
        assert resolve_client_id({"client_id": "two", "clientId": "three"}) == "two"
        assert resolve_client_id({"clientId": "three"}) == "three"

    def test_unknown_client(self):
        assert resolve_client_id({"azp": "  "}) == "unknown-client"
        assert resolve_client_id({}) == "unknown-client"
