"""Runtime logging helpers."""

from __future__ import annotations

import sys
from logging import Handler
from typing import Literal, TextIO

from loguru import logger
from rich import get_console
from rich.logging import RichHandler

LogProfile = Literal["default", "chat"]

SERVER_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<6} | {name}:{function}:{line} | {message}"
_configured: tuple[LogProfile, str] | None = None


def _sink(profile: LogProfile) -> tuple[Handler | TextIO, str]:
    # Rich renders level and layout itself in the interactive chat.
    if profile == "chat":
        handler = RichHandler(console=get_console(), show_time=False, show_path=False, markup=False)
        return handler, "{message}"
    return sys.stderr, SERVER_FORMAT


def configure_logging(*, profile: LogProfile = "default", level: str = "INFO") -> None:
    """Route loguru to stderr (server, one-shot commands) or rich (interactive chat)."""
    global _configured
    if _configured == (profile, level.upper()):
        return
    sink, fmt = _sink(profile)
    logger.remove()
    logger.add(sink, level=level.upper(), format=fmt, backtrace=False, diagnose=False)
    _configured = (profile, level.upper())


def mask_secret(url: str, secret: str | None) -> str:
    """Hide a credential embedded in a URL before it reaches the logs."""
    if not secret:
        return url
    return url.replace(secret, "***")
