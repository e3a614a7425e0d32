"""
NeonVideo action dispatcher

Executes one neonvideo_action tool call:
1. help: static command list, no backend call
2. generate_video: validate the prompt, POST it, return a queued status view
3. check_status: GET the project status and normalize it

Every failure is returned as an error view; nothing here raises to the
MCP layer. Credential failures carry a WWW-Authenticate challenge in the
result _meta when OAuth is enabled so the client can re-authenticate.
"""

import logging
import re
import time
from typing import Dict, Optional

from neonvideo_mcp.auth.errors import INSUFFICIENT_SCOPE, INVALID_TOKEN
from neonvideo_mcp.auth.token_verifier import AuthInfo
from neonvideo_mcp.backends.client import BackendNetworkError, BackendResponse, NeonVideoClient, build_headers
from neonvideo_mcp.config import APP_NAME, ResourceServerConfig
from neonvideo_mcp.metadata import build_bearer_challenge

from .schemas import ActionRequest, Command, ErrorDetail, HelpView, StatusView, ToolResponse
from .status import build_status_view

logger = logging.getLogger(__name__)

MIN_PROMPT_WORDS = 8
MIN_PROMPT_LENGTH = 60

PROMPT_GUIDANCE = (
    "Template: Create a music video of [Character] [Video description]\n"
    "Example: Create a music video of a 3D animated cowboy mouse living on a farm."
)

HELP_COMMANDS = [
    Command(
        syntax="@NeonVideo Create a music video of <description>",
        description="Start a new NeonVideo project using the provided prompt.",
    ),
    Command(
        syntax="@NeonVideo Make a music video about <description>",
        description="Start a new NeonVideo project using the provided prompt.",
    ),
    Command(
        syntax="@NeonVideo Help",
        description="Show available commands and authentication guidance.",
    ),
]

OAUTH_USAGE_NOTE = (
    "Complete the NeonVideo OAuth prompt in ChatGPT when requested; "
    "this issues an access token automatically."
)
TOKEN_USAGE_NOTE = "Authenticate at https://neonvideo.ai/ to obtain an auth token before launching new videos."

USAGE_NOTES = [
    "Each music video consumes credits; ensure your NeonVideo account has enough balance.",
    "Generations typically finish in about 10 minutes; the widget auto-refreshes progress for up to 30 minutes.",
    "For best results, follow the template: Create a music video of [Character] [Video description].",
]


def prompt_has_detail(prompt: str) -> bool:
    """A prompt is detailed enough with at least 8 words or 60 characters."""
    words = [word for word in re.split(r"\s+", prompt) if word]
    return len(words) >= MIN_PROMPT_WORDS or len(prompt) >= MIN_PROMPT_LENGTH


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


class ActionDispatcher:
    """
    Runs neonvideo_action tool calls against the NeonVideo API.
    """

    def __init__(
        self,
        client: NeonVideoClient,
        oauth_config: Optional[ResourceServerConfig] = None,
        default_auth_token: Optional[str] = None,
        default_auth_cookie: Optional[str] = None
    ):
        """
        Initialize the dispatcher.

        Args:
            client: NeonVideo API client
            oauth_config: Resource server configuration, None when OAuth is disabled
            default_auth_token: Fallback API token (NEONVIDEO_AUTH_TOKEN)
            default_auth_cookie: Fallback API cookie (NEONVIDEO_AUTH_COOKIE)
        """
        self.client = client
        self.oauth_config = oauth_config
        self.default_auth_token = default_auth_token
        self.default_auth_cookie = default_auth_cookie

    @property
    def oauth_enabled(self) -> bool:
        return self.oauth_config is not None

    def _challenge(self, error: str, description: str) -> Optional[str]:
        if self.oauth_config is None:
            return None
        return build_bearer_challenge(self.oauth_config, error=error, description=description)

    def _headers(self, request_token: Optional[str], auth_info: Optional[AuthInfo]) -> Optional[Dict[str, str]]:
        """
        Resolve outbound credentials.

        Precedence: explicit authToken, then the verified OAuth token, then
        NEONVIDEO_AUTH_TOKEN. The fallback cookie is always sent when set.

        Returns:
            Header dict, or None when no credential is available
        """
        token = request_token or (auth_info.token if auth_info else None) or self.default_auth_token
        if not token and not self.default_auth_cookie:
            return None
        return build_headers(token, self.default_auth_cookie)

    async def dispatch(self, request: ActionRequest, auth_info: Optional[AuthInfo] = None) -> ToolResponse:
        """
        Execute one action.

        Args:
            request: ActionRequest
            auth_info: Verified token info for this request, if any

        Returns:
            ToolResponse
        """
        if request.action == "help":
            return self.help()

        if request.action == "generate_video":
            return await self.generate_video(request.prompt, request.auth_token, auth_info)

        if request.action == "check_status":
            return await self.check_status(request.project_id, request.auth_token, auth_info)

        logger.warning(f"Unsupported action requested: {request.action}")
        return ToolResponse.failure(
            "Unknown NeonVideo action.",
            ErrorDetail(type="unknown", message=f"Unsupported action {request.action}"),
        )

    def help(self) -> ToolResponse:
        first_note = OAUTH_USAGE_NOTE if self.oauth_enabled else TOKEN_USAGE_NOTE
        view = HelpView(
            title=f"{APP_NAME} Commands",
            commands=list(HELP_COMMANDS),
            usage_notes=[first_note] + USAGE_NOTES,
        )
        return ToolResponse(
            text="Here are the NeonVideo.AI commands you can use. Launch a video using the widget below.",
            view=view,
        )

    def _missing_credentials(self, oauth_message: str, token_message: str, challenge_description: str) -> ToolResponse:
        message = oauth_message if self.oauth_enabled else token_message
        return ToolResponse.failure(
            message,
            ErrorDetail(type="auth", message=message),
            challenge=self._challenge(INVALID_TOKEN, challenge_description),
        )

    def _backend_failure(self, response: BackendResponse, fallback_message: str) -> ToolResponse:
        """Error view for a non-2xx status or a body that is not a JSON object."""
        message = None
        if response.payload is not None and isinstance(response.payload.get("error"), str):
            message = response.payload["error"]

        challenge = None
        if response.status_code == 403:
            challenge = self._challenge(INSUFFICIENT_SCOPE, "Access token lacks required NeonVideo scopes.")
        elif response.status_code == 401:
            challenge = self._challenge(INVALID_TOKEN, "Access token was rejected by NeonVideo.AI.")

        detail = ErrorDetail(
            type="auth" if response.is_unauthorized else "api",
            message=message or fallback_message,
            details=response.text or None,
            status=response.status_code,
        )
        return ToolResponse.failure(detail.message, detail, challenge=challenge)

    async def generate_video(
        self,
        prompt: Optional[str],
        request_token: Optional[str] = None,
        auth_info: Optional[AuthInfo] = None
    ) -> ToolResponse:
        """Start a new video project from a prompt."""
        if not prompt:
            return ToolResponse.failure(
                "Please provide a detailed prompt describing the music video you want NeonVideo.AI to create.",
                ErrorDetail(type="validation", message="Prompt is required to create a NeonVideo project."),
            )

        prompt = prompt.strip()
        if not prompt_has_detail(prompt):
            return ToolResponse.failure(
                "Please share a more descriptive prompt for NeonVideo.AI.\n" + PROMPT_GUIDANCE,
                ErrorDetail(type="validation", message="Prompt needs more detail.", details=PROMPT_GUIDANCE),
            )

        headers = self._headers(request_token, auth_info)
        if headers is None:
            return self._missing_credentials(
                "NeonVideo.AI requires a valid OAuth session. Reconnect the NeonVideo app to continue.",
                "NeonVideo.AI requires authentication. Set NEONVIDEO_AUTH_TOKEN or NEONVIDEO_AUTH_COOKIE for the MCP server.",
                "Authenticate with NeonVideo.AI to launch video generation.",
            )

        preview = " ".join(prompt[:120].split())
        logger.info(f"generate_video start prompt=\"{preview}\"")
        started = time.monotonic()

        try:
            response = await self.client.create_project(prompt, headers)
        except BackendNetworkError as e:
            return self._network_failure("generate_video", str(e) or "NeonVideo API request failed.")
        except Exception as e:
            logger.error(f"generate_video encountered error: {e}", exc_info=True)
            return self._network_failure("generate_video", str(e) or "NeonVideo API request failed.")

        if not response.ok or response.payload is None:
            logger.warning(f"generate_video failed status={response.status_code}")
            return self._backend_failure(
                response,
                f"NeonVideo API returned {response.status_code} {response.reason}".strip(),
            )

        project_id = response.payload.get("projectId")
        project_id = "" if project_id is None else str(project_id)
        if not project_id:
            logger.warning(f"generate_video missing projectId response={response.text}")
            return ToolResponse.failure(
                "NeonVideo.AI did not provide a project identifier.",
                ErrorDetail(
                    type="api",
                    message="NeonVideo API response was missing expected fields.",
                    details=response.text,
                ),
            )

        logger.info(f"generate_video accepted projectId={project_id} ({_elapsed_ms(started)}ms)")

        message = response.payload.get("message")
        view = StatusView(
            project_id=project_id,
            prompt=prompt,
            message="Video generation started" if message is None else str(message),
            status="queued",
            poll_url=self.client.poll_url(project_id),
        )
        return ToolResponse(
            text=(
                f"NeonVideo.AI started generating your video (project {project_id}). "
                "Use the widget to monitor progress."
            ),
            view=view,
        )

    async def check_status(
        self,
        project_id: Optional[str],
        request_token: Optional[str] = None,
        auth_info: Optional[AuthInfo] = None
    ) -> ToolResponse:
        """Fetch and normalize the status of an existing project."""
        if not project_id:
            return ToolResponse.failure(
                "Provide a project ID so I can retrieve the latest status from NeonVideo.AI.",
                ErrorDetail(type="validation", message="Project ID is required to check status."),
            )

        headers = self._headers(request_token, auth_info)
        if headers is None:
            return self._missing_credentials(
                "NeonVideo.AI requires a valid OAuth session before checking project status. "
                "Reconnect the app and try again.",
                "Set NEONVIDEO_AUTH_TOKEN or NEONVIDEO_AUTH_COOKIE to check NeonVideo.AI project status.",
                "Authenticate with NeonVideo.AI to view project status.",
            )

        logger.info(f"check_status projectId={project_id}")
        started = time.monotonic()

        try:
            response = await self.client.get_status(project_id, headers)
        except BackendNetworkError as e:
            return self._network_failure("check_status", str(e) or "Failed to contact NeonVideo.AI.")
        except Exception as e:
            logger.error(f"check_status encountered error: {e}", exc_info=True)
            return self._network_failure("check_status", str(e) or "Failed to contact NeonVideo.AI.")

        if not response.ok or response.payload is None:
            logger.warning(f"check_status failed projectId={project_id} status={response.status_code}")
            return self._backend_failure(
                response,
                f"Failed to fetch project {project_id} ({response.status_code})",
            )

        raw, view = build_status_view(response.payload, project_id, self.client.poll_url(project_id))

        logger.info(
            f"check_status projectId={view.project_id} raw={raw} normalized={view.status} "
            f"finalVideo={bool(view.final_video_url)} ({_elapsed_ms(started)}ms)"
        )

        if view.status == "complete":
            text = f"Project {view.project_id} is complete. Enjoy your NeonVideo!"
        else:
            text = f"Latest status from NeonVideo.AI: {raw or 'pending'}."
        return ToolResponse(text=text, view=view)

    @staticmethod
    def _network_failure(action: str, message: str) -> ToolResponse:
        logger.error(f"{action} network failure: {message}")
        return ToolResponse.failure(message, ErrorDetail(type="network", message=message))
