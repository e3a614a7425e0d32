"""
Tool input and output models

The structured output of the neonvideo_action tool is a closed tagged
union on the 'view' field:
- HelpView: command list and usage notes
- StatusView: project progress
- ErrorView: failure envelope

Wire names are camelCase (projectId, pollUrl, ...).
"""

from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel

ActionName = Literal["help", "generate_video", "check_status"]
ErrorType = Literal["auth", "validation", "network", "api", "unknown"]
NormalizedStatus = Literal["queued", "generating", "complete", "error"]

WWW_AUTHENTICATE_META_KEY = "mcp/www_authenticate"


def now_iso() -> str:
    """UTC timestamp with millisecond precision, e.g. 2024-05-01T12:00:00.000Z"""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ActionRequest(CamelModel):
    """
    Tool input.

    Blank strings are treated as absent so the dispatcher reports them as
    validation errors instead of sending them to the API.
    """

    action: str = "help"
    prompt: Optional[str] = None
    project_id: Optional[str] = None
    auth_token: Optional[str] = None

    @field_validator("prompt", "project_id", "auth_token", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    @field_validator("action", mode="before")
    @classmethod
    def _default_action(cls, value: Any) -> Any:
        return "help" if value is None else value


class ErrorDetail(CamelModel):
    type: ErrorType
    message: str
    details: Optional[str] = None
    status: Optional[int] = None


class Command(CamelModel):
    syntax: str
    description: str


class HelpView(CamelModel):
    view: Literal["help"] = "help"
    title: str
    timestamp: str = Field(default_factory=now_iso)
    commands: List[Command]
    usage_notes: List[str]


class StatusView(CamelModel):
    view: Literal["status"] = "status"
    project_id: str
    prompt: str
    message: str
    status: NormalizedStatus
    poll_url: str
    checked_at: str = Field(default_factory=now_iso)
    final_video_url: Optional[str] = None
    audio_url: Optional[str] = None
    scene_images: Optional[List[str]] = None
    scene_prompts: Optional[List[str]] = None
    credits_remaining: Optional[float] = None
    credits_required: Optional[float] = None
    error: Optional[ErrorDetail] = None


class ErrorView(CamelModel):
    view: Literal["error"] = "error"
    timestamp: str = Field(default_factory=now_iso)
    error: ErrorDetail


StructuredView = Annotated[Union[HelpView, StatusView, ErrorView], Field(discriminator="view")]

structured_view_adapter = TypeAdapter(StructuredView)


class ToolResponse(BaseModel):
    """
    Result of one tool call: a text line, a structured view and, for
    credential failures, the WWW-Authenticate challenge to surface.
    """

    text: str
    view: StructuredView
    challenge: Optional[str] = None

    @classmethod
    def failure(
        cls,
        text: str,
        error: ErrorDetail,
        challenge: Optional[str] = None
    ) -> "ToolResponse":
        return cls(text=text, view=ErrorView(error=error), challenge=challenge)

    @property
    def meta(self) -> Optional[Dict[str, str]]:
        if not self.challenge:
            return None
        return {WWW_AUTHENTICATE_META_KEY: self.challenge}

    def structured_content(self) -> Dict[str, Any]:
        return structured_view_adapter.dump_python(self.view, by_alias=True, exclude_none=True)

    def to_payload(self) -> Dict[str, Any]:
        """Serialize to the MCP CallToolResult shape."""
        payload: Dict[str, Any] = {
            "content": [{"type": "text", "text": self.text}],
            "structuredContent": self.structured_content(),
        }
        if self.meta:
            payload["_meta"] = self.meta
        return payload
