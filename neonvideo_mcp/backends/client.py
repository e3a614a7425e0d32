"""
NeonVideo API Client

Handles the outbound side of a tool call:
1. Building absolute URLs against the configured API base
2. Credential headers (bearer token and/or auth cookie)
3. One HTTP call per request (no retries), bounded end to end by timeout_ms
4. Parsing the JSON body while keeping the raw text for error details

Timeouts and transport failures surface as BackendNetworkError; any HTTP
status is returned to the caller as a BackendResponse.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import quote, urljoin

import httpx

logger = logging.getLogger(__name__)

CREATE_ENDPOINT = "/api/neon-single-prompt"
STATUS_ENDPOINT = "/api/neon-single-prompt/status"


class BackendNetworkError(Exception):
    """The NeonVideo API could not be reached (timeout, connection failure)."""
    pass


@dataclass
class BackendResponse:
    """HTTP response from the NeonVideo API."""

    status_code: int
    reason: str
    text: str
    payload: Optional[Dict[str, Any]] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def is_unauthorized(self) -> bool:
        return self.status_code in (401, 403)


def parse_payload(text: str) -> Optional[Dict[str, Any]]:
    """Parse a JSON object body; anything else yields None."""
    if not text:
        return None
    try:
        payload = json.loads(text)
    except ValueError:
        return None
    return payload if isinstance(payload, dict) else None


def build_headers(auth_token: Optional[str] = None, auth_cookie: Optional[str] = None) -> Dict[str, str]:
    """
    Build request headers for the NeonVideo API.

    Args:
        auth_token: Bearer token ("Bearer " prefix optional)
        auth_cookie: Cookie value or full "auth_token=..." cookie string

    Returns:
        Header dict
    """
    headers = {"Content-Type": "application/json"}

    if auth_token:
        headers["Authorization"] = auth_token if auth_token.startswith("Bearer ") else f"Bearer {auth_token}"

    if auth_cookie:
        headers["Cookie"] = auth_cookie if "auth_token=" in auth_cookie else f"auth_token={auth_cookie}"

    return headers


class NeonVideoClient:
    """
    Thin async client for the NeonVideo single-prompt API.
    """

    def __init__(
        self,
        base_url: str = "https://neonvideo.ai",
        timeout_ms: int = 60000,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize the client.

        Args:
            base_url: NeonVideo API base URL
            timeout_ms: Bound applied to every outbound call, in milliseconds
            transport: Optional httpx transport (tests)
        """
        self.base_url = base_url if base_url.endswith("/") else f"{base_url}/"
        self.timeout_ms = timeout_ms
        self.transport = transport
        logger.info(f"NeonVideoClient initialized for {self.base_url} (timeout={timeout_ms}ms)")

    def url_for(self, path: str) -> str:
        """Resolve an API path against the base URL, keeping any base path prefix."""
        return urljoin(self.base_url, path.lstrip("/"))

    def poll_url(self, project_id: str) -> str:
        return self.url_for(f"{STATUS_ENDPOINT}/{quote(project_id, safe='')}")

    async def _send(self, method: str, url: str, headers: Dict[str, str], body: Optional[Dict[str, Any]]) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout_ms / 1000, transport=self.transport) as client:
            # Non-streaming request, so the body is fully read before returning
            return await client.request(method, url, headers=headers, json=body)

    async def _request(self, method: str, url: str, headers: Dict[str, str], body: Optional[Dict[str, Any]] = None) -> BackendResponse:
        # httpx timeouts apply per phase; wait_for bounds connect, send and body read together
        try:
            response = await asyncio.wait_for(self._send(method, url, headers, body), self.timeout_ms / 1000)
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            logger.error(f"Timeout calling NeonVideo API {method} {url}")
            raise BackendNetworkError(f"Request timed out after {self.timeout_ms} ms") from e
        except httpx.RequestError as e:
            logger.error(f"Network error calling NeonVideo API {method} {url}: {e}")
            raise BackendNetworkError(str(e) or "NeonVideo API request failed.") from e

        text = response.text
        return BackendResponse(
            status_code=response.status_code,
            reason=response.reason_phrase,
            text=text,
            payload=parse_payload(text),
        )

    async def create_project(self, prompt: str, headers: Dict[str, str]) -> BackendResponse:
        """POST a prompt to start a new video project."""
        return await self._request("POST", self.url_for(CREATE_ENDPOINT), headers, {"prompt": prompt})

    async def get_status(self, project_id: str, headers: Dict[str, str]) -> BackendResponse:
        """GET the current state of a project."""
        return await self._request("GET", self.poll_url(project_id), headers)
