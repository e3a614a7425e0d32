"""neonvideo_action tool: input/output models, status normalization and dispatch"""

from .dispatcher import ActionDispatcher
from .schemas import ActionRequest, ErrorDetail, ErrorView, HelpView, StatusView, ToolResponse
from .status import normalize_status

__all__ = [
    "ActionDispatcher",
    "ActionRequest",
    "ErrorDetail",
    "ErrorView",
    "HelpView",
    "StatusView",
    "ToolResponse",
    "normalize_status",
]
