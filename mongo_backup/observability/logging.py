"""Logging configuration utilities.

Wires stdlib ``logging`` and ``structlog`` together so every engine event is
rendered as one JSON line. Command lines pass through :func:`redact_args`
before they are logged or attached to errors.
"""

from __future__ import annotations

import json
import logging
import re
from functools import partial
from typing import Iterable

import structlog

get_logger = structlog.get_logger

_configured = False

_SECRET_FLAGS = ("--password=", "--sshPassword=")
_URI_CREDENTIALS = re.compile(r"(mongodb(?:\+srv)?://[^:/@]+):([^@/]+)@")


def configure_logging(level: str | int = "INFO") -> None:
    """Configure stdlib logging and structlog."""
    global _configured
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logging.basicConfig(level=level, format="%(message)s")
    logging.getLogger().setLevel(level)
    # paramiko is chatty at INFO
    logging.getLogger("paramiko").setLevel(max(level, logging.WARNING))
    if _configured:
        return
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.stdlib.add_log_level,
            structlog.processors.JSONRenderer(
                serializer=partial(json.dumps, ensure_ascii=False)
            ),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
    )
    _configured = True


def redact(value: str) -> str:
    """Mask credentials embedded in a single argument."""

    for flag in _SECRET_FLAGS:
        if value.startswith(flag):
            return f"{flag}****"
    return _URI_CREDENTIALS.sub(r"\1:****@", value)


def redact_args(binary: str, args: Iterable[str]) -> str:
    """Return a shell-like, credential-free rendering of ``binary args``."""

    parts = [binary]
    for arg in args:
        masked = redact(arg)
        parts.append(f'"{masked}"' if " " in masked else masked)
    return " ".join(parts)
