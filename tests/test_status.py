"""
Status normalization tests
"""

import pytest

from neonvideo_mcp.actions.status import build_status_view, normalize_status

POLL_URL = "https://api.example.com/api/neon-single-prompt/status/p1"


class TestNormalizeStatus:
    """Test mapping of raw API states onto queued/generating/complete/error"""

    @pytest.mark.parametrize("raw", ["completed", "Complete", "DONE", "finished"])
    def test_complete(self, raw):
        assert normalize_status({"status": raw}) == (raw.lower(), "complete")

    @pytest.mark.parametrize("raw", ["failed", "error", "cancelled", "canceled"])
    def test_error(self, raw):
        assert normalize_status({"status": raw})[1] == "error"

    @pytest.mark.parametrize("raw", ["queued", "pending", "waiting"])
    def test_queued(self, raw):
        assert normalize_status({"status": raw})[1] == "queued"

    def test_unknown_is_generating(self):
        assert normalize_status({"status": "rendering_scenes"}) == ("rendering_scenes", "generating")

    def test_empty_payload_is_generating(self):
        """Test a payload with no status field at all"""
        assert normalize_status({}) == ("", "generating")

    def test_is_completed_flag(self):
        assert normalize_status({"status": "rendering", "isCompleted": True})[1] == "complete"

    def test_status_field_precedence(self):
        """Test status wins over state, which wins over generationStatus"""
        assert normalize_status({"state": "queued", "generationStatus": "done"}) == ("queued", "queued")
        assert normalize_status({"generationStatus": "done"}) == ("done", "complete")

    def test_final_video_forces_complete(self):
        assert normalize_status({"status": "generating", "videoUrl": "https://cdn/v.mp4"})[1] == "complete"

    def test_final_video_does_not_override_error(self):
        assert normalize_status({"status": "failed", "finalVideoUrl": "https://cdn/v.mp4"})[1] == "error"


class TestBuildStatusView:
    """Test status view construction"""

    def test_minimal_payload(self):
        """Test defaults come from the requested project"""
        raw, view = build_status_view({}, "p1", POLL_URL)
        assert raw == ""
        assert view.project_id == "p1"
        assert view.prompt == "p1"
        assert view.status == "generating"
        assert view.message == "NeonVideo.AI status: pending"
        assert view.poll_url == POLL_URL
        assert view.error is None

    def test_aliases(self):
        """Test media fields are read under their alternative names"""
        payload = {
            "id": "p1-server",
            "title": "Cowboy mouse",
            "status": "processing",
            "songUrl": "https://cdn/song.mp3",
            "frames": ["https://cdn/1.png", 7, "https://cdn/2.png"],
            "scenePrompts": ["scene one"],
            "creditsRemaining": 12,
            "creditsRequired": 3.5,
            "message": "Rendering scenes",
        }
        _, view = build_status_view(payload, "p1", POLL_URL)
        assert view.project_id == "p1-server"
        assert view.prompt == "Cowboy mouse"
        assert view.audio_url == "https://cdn/song.mp3"
        assert view.scene_images == ["https://cdn/1.png", "https://cdn/2.png"]
        assert view.scene_prompts == ["scene one"]
        assert view.credits_remaining == 12
        assert view.credits_required == 3.5
        assert view.message == "Rendering scenes"

    def test_prompt_precedence(self):
        payload = {"description": "d", "prompt": "p", "title": "t"}
        assert build_status_view(payload, "p1", POLL_URL)[1].prompt == "d"

    def test_error_detail(self):
        _, view = build_status_view({"status": "failed", "details": "GPU melted"}, "p1", POLL_URL)
        assert view.error.type == "api"
        assert view.error.message == "GPU melted"

    def test_default_error_message(self):
        _, view = build_status_view({"status": "cancelled"}, "p1", POLL_URL)
        assert view.error.message == "NeonVideo.AI reported an error while generating the video."

    def test_non_numeric_credits_ignored(self):
        _, view = build_status_view({"creditsRemaining": "12", "creditsRequired": True}, "p1", POLL_URL)
        assert view.credits_remaining is None
        assert view.credits_required is None
