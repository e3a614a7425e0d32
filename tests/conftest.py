"""
Pytest configuration and fixtures
"""

import base64
import json
import time

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jose import jwt

from neonvideo_mcp.config import NeonVideoSettings, ResourceServerConfig

ISSUER = "https://auth.example.com"
JWKS_URI = "https://auth.example.com/.well-known/jwks.json"
RESOURCE = "https://mcp.example.com/mcp"
API_BASE_URL = "https://api.example.com"
KID = "test-key"

NEONVIDEO_ENV_VARS = [
    "NEONVIDEO_OAUTH_ISSUER_URL",
    "NEONVIDEO_OAUTH_RESOURCE",
    "NEONVIDEO_OAUTH_JWKS_URL",
    "NEONVIDEO_OAUTH_REQUIRED_SCOPES",
    "NEONVIDEO_OAUTH_OPTIONAL_SCOPES",
    "NEONVIDEO_OAUTH_AUTHORIZATION_ENDPOINT",
    "NEONVIDEO_OAUTH_TOKEN_ENDPOINT",
    "NEONVIDEO_OAUTH_REGISTRATION_ENDPOINT",
    "NEONVIDEO_OAUTH_RESOURCE_DOCUMENTATION",
    "NEONVIDEO_OAUTH_AUDIENCE",
    "NEONVIDEO_AUTH_TOKEN",
    "NEONVIDEO_AUTH_COOKIE",
    "NEONVIDEO_API_BASE_URL",
    "NEONVIDEO_API_TIMEOUT_MS",
    "NEONVIDEO_JWKS_CACHE_TTL",
    "HOST",
    "PORT",
    "LOG_LEVEL",
]


def make_settings(**fields) -> NeonVideoSettings:
    """Build settings from field names; the settings class only accepts env aliases."""
    aliases = {NeonVideoSettings.model_fields[name].alias: value for name, value in fields.items()}
    return NeonVideoSettings(**aliases)


def _b64(value: int) -> str:
    raw = value.to_bytes((value.bit_length() + 7) // 8, "big")
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def public_jwk(private_key, kid: str) -> dict:
    """Export an RSA public key as a JWK with the given kid."""
    numbers = private_key.public_key().public_numbers()
    return {"kty": "RSA", "kid": kid, "alg": "RS256", "use": "sig", "n": _b64(numbers.n), "e": _b64(numbers.e)}


def private_pem(private_key) -> bytes:
    return private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Keep the developer's environment and .env file out of the tests"""
    for name in NEONVIDEO_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture(scope="session")
def rsa_key():
    """Signing key for test tokens"""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def other_rsa_key():
    """A key the JWKS does not publish"""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def jwks(rsa_key):
    return {"keys": [public_jwk(rsa_key, KID)]}


@pytest.fixture
def make_token(rsa_key):
    """Mint RS256 access tokens; claims default to a valid token for RESOURCE"""

    def _make(claims=None, key=None, kid=KID, drop=()):
        now = int(time.time())
        payload = {
            "iss": ISSUER,
            "aud": RESOURCE,
            "sub": "user-123",
            "azp": "chatgpt-connector",
            "scope": "videos:write profile",
            "iat": now,
            "exp": now + 3600,
        }
        payload.update(claims or {})
        for name in drop:
            payload.pop(name, None)
        headers = {"kid": kid} if kid else None
        return jwt.encode(payload, private_pem(key or rsa_key), algorithm="RS256", headers=headers)

    return _make


@pytest.fixture
def oauth_config():
    """Resource server config with one required scope"""
    return ResourceServerConfig(
        issuer=ISSUER,
        jwks_uri=JWKS_URI,
        resource_indicator=RESOURCE,
        required_scopes=("videos:write",),
        optional_scopes=("profile",),
    )


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it served"""

    def __init__(self, handler):
        self.requests = []

        def _record(request):
            self.requests.append(request)
            return handler(request)

        super().__init__(_record)

    def count(self, url: str) -> int:
        return sum(1 for request in self.requests if str(request.url) == url)


@pytest.fixture
def jwks_transport(jwks):
    """Serves the test JWKS at JWKS_URI"""

    def handler(request):
        if str(request.url) == JWKS_URI:
            return httpx.Response(200, json=jwks)
        return httpx.Response(404, text="not found")

    return RecordingTransport(handler)


def json_response(status_code: int, payload) -> httpx.Response:
    return httpx.Response(status_code, text=json.dumps(payload), headers={"Content-Type": "application/json"})
