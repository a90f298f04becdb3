"""Structured JSON logging for collection runs.

stdout carries the emitted posture record, so logs always go to stderr
(or an explicit stream). Credentials that end up in a message, such as an
echoed Authorization header or a client assertion, are masked.
"""

from __future__ import annotations

import json
import logging
import re
import sys
from datetime import datetime, timezone
from typing import IO, Optional

_EXTRA_KEYS = (
    "org_domain",
    "resource",
    "records",
    "duration_s",
    "run_id",
    "attempt",
    "wait_s",
    "status",
)

_CREDENTIAL_RE = re.compile(
    r"(?P<prefix>\b(?:SSWS|Bearer)\s+|client_assertion=|access_token[\"']?\s*[:=]\s*[\"']?)"
    r"[A-Za-z0-9._~+/=-]+"
)


def redact(text: str) -> str:
    """Mask API tokens, bearer tokens and signed assertions in `text`."""
    return _CREDENTIAL_RE.sub(lambda m: m.group("prefix") + "[REDACTED]", text)


class JsonFormatter(logging.Formatter):
    """Emit one JSON object per log line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": redact(record.getMessage()),
        }
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = redact(self.formatException(record.exc_info))
        for key in _EXTRA_KEYS:
            val = getattr(record, key, None)
            if val is not None:
                entry[key] = val
        return json.dumps(entry, default=str)


def configure_logging(level: str = "INFO", stream: Optional[IO[str]] = None) -> None:
    """Attach a single JSON handler to the "posture" logger tree."""
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JsonFormatter())
    logger = logging.getLogger("posture")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.propagate = False
