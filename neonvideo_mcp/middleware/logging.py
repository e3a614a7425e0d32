"""
Logging setup for the NeonVideo MCP server

Bearer tokens travel through request headers, backend calls and error
text. Every handler installed here masks them before a record is written.
"""

import logging
import os
import re
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_BEARER_PATTERN = re.compile(r"(Bearer\s+)([A-Za-z0-9\-._~+/]+=*)", re.IGNORECASE)

NOISY_LOGGERS = ("httpx", "httpcore", "asyncio", "mcp.server.streamable_http", "uvicorn.access")


def redact_bearer_tokens(message: str) -> str:
    """Replace everything after 'Bearer ' with its first 6 characters and '...'."""
    return _BEARER_PATTERN.sub(lambda match: f"{match.group(1)}{match.group(2)[:6]}...", message)


class RedactingFilter(logging.Filter):
    """Masks bearer tokens in the formatted message."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = redact_bearer_tokens(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def setup_logging(log_level: Optional[str] = None) -> None:
    """
    Configure root logging for the server.

    Args:
        log_level: Log level name, defaults to LOG_LEVEL or INFO
    """
    if log_level is None:
        log_level = os.getenv("LOG_LEVEL", "INFO")

    root = logging.getLogger()
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)

    for handler in root.handlers:
        if not any(isinstance(f, RedactingFilter) for f in handler.filters):
            handler.addFilter(RedactingFilter())

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root.info(f"Logging configured: level={log_level.upper()}")
