"""
Status normalization for NeonVideo project payloads

Maps whatever the status endpoint returns onto the four states the widget
understands (queued, generating, complete, error) and picks up the media
fields under their known aliases.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from .schemas import ErrorDetail, StatusView

logger = logging.getLogger(__name__)

COMPLETE_STATES = ("completed", "complete", "done", "finished")
ERROR_STATES = ("failed", "error", "cancelled", "canceled")
QUEUED_STATES = ("queued", "pending", "waiting")

RAW_STATUS_FIELDS = ("status", "state", "generationStatus")

DEFAULT_GENERATION_ERROR = "NeonVideo.AI reported an error while generating the video."


def _first_present(payload: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = payload.get(key)
        if value is not None:
            return value
    return None


def _first_string(payload: Dict[str, Any], *keys: str) -> Optional[str]:
    for key in keys:
        value = payload.get(key)
        if isinstance(value, str):
            return value
    return None


def _string_list(payload: Dict[str, Any], *keys: str) -> Optional[List[str]]:
    for key in keys:
        value = payload.get(key)
        if isinstance(value, list):
            return [item for item in value if isinstance(item, str)]
    return None


def _number(payload: Dict[str, Any], key: str) -> Optional[float]:
    value = payload.get(key)
    # bool is an int subclass; a flag is not a credit count
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    return None


def raw_status(payload: Dict[str, Any]) -> str:
    """First present of status/state/generationStatus, lower-cased ('' when absent)."""
    value = _first_present(payload, *RAW_STATUS_FIELDS)
    return "" if value is None else str(value).lower()


def normalize_status(payload: Dict[str, Any]) -> Tuple[str, str]:
    """
    Normalize a status payload.

    Args:
        payload: Parsed JSON object from the status endpoint

    Returns:
        Tuple of (raw status, normalized status)
    """
    raw = raw_status(payload)

    if payload.get("isCompleted") is True or raw in COMPLETE_STATES:
        normalized = "complete"
    elif raw in ERROR_STATES:
        normalized = "error"
    elif raw in QUEUED_STATES:
        normalized = "queued"
    else:
        normalized = "generating"

    # A finished video wins over any in-progress state
    if normalized != "error" and _first_string(payload, "finalVideoUrl", "videoUrl"):
        normalized = "complete"

    return raw, normalized


def build_status_view(payload: Dict[str, Any], project_id: str, poll_url: str) -> Tuple[str, StatusView]:
    """
    Build the status view for a check_status call.

    Args:
        payload: Parsed JSON object from the status endpoint
        project_id: Project id the caller asked about
        poll_url: Absolute status URL for that project

    Returns:
        Tuple of (raw status, StatusView)
    """
    raw, normalized = normalize_status(payload)

    error = None
    if normalized == "error":
        error = ErrorDetail(
            type="api",
            message=_first_string(payload, "error", "details") or DEFAULT_GENERATION_ERROR,
        )

    payload_id = payload.get("id")
    prompt = _first_present(payload, "description", "prompt", "title")
    message = payload.get("message")

    view = StatusView(
        project_id=project_id if payload_id is None else str(payload_id),
        prompt=project_id if prompt is None else str(prompt),
        message=message if isinstance(message, str) else f"NeonVideo.AI status: {raw or 'pending'}",
        status=normalized,
        poll_url=poll_url,
        final_video_url=_first_string(payload, "finalVideoUrl", "videoUrl"),
        audio_url=_first_string(payload, "audioUrl", "songUrl"),
        scene_images=_string_list(payload, "sceneImages", "frames"),
        scene_prompts=_string_list(payload, "scenePrompts"),
        credits_remaining=_number(payload, "creditsRemaining"),
        credits_required=_number(payload, "creditsRequired"),
        error=error,
    )

    logger.debug(f"Normalized status for {view.project_id}: raw={raw!r} normalized={normalized}")
    return raw, view
