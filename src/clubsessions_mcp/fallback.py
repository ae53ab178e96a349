"""Static sample session shown when neither the API nor the cache can provide one."""

import json
import logging
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from .config import PLACEHOLDER_THUMBNAIL_URL, SESSION_FALLBACK_PATH
from .models import SessionInfo

logger = logging.getLogger(__name__)

# Sample sessions without a fixed start are shown this far in the future
FALLBACK_LEAD_TIME = timedelta(days=3)

DEFAULT_FALLBACK_SESSION: dict[str, Any] = {
    "id": "sample-session",
    "title": "Building Scalable APIs with Node.js",
    "description": "Learn best practices for building production-ready APIs that scale.",
    "thumbnail_url": PLACEHOLDER_THUMBNAIL_URL,
    "url": "https://youtube.com/@techandinnovationclub",
    "is_live": False,
}


def load_fallback_session(path: str | Path | None = SESSION_FALLBACK_PATH) -> SessionInfo:
    """Build the fallback record, overlaying fields from a JSON file if given.

    A missing or unreadable file logs an error and keeps the built-in sample,
    so there is always something to render. A record without scheduled_start
    keeps it empty; with_default_start() fills it in when the record is served.
    """
    data = dict(DEFAULT_FALLBACK_SESSION)
    if path:
        try:
            with open(path, encoding="utf-8") as f:
                overrides = json.load(f)
            if not isinstance(overrides, dict):
                raise ValueError("expected a JSON object")
            data.update(overrides)
        except (OSError, ValueError) as e:
            logger.error(f"Cannot load fallback session from {path}: {e}")
            data = dict(DEFAULT_FALLBACK_SESSION)

    try:
        session = SessionInfo.from_dict(data)
    except (KeyError, ValueError, TypeError) as e:
        logger.error(f"Fallback session in {path} is invalid ({e}), using built-in sample")
        session = SessionInfo.from_dict(DEFAULT_FALLBACK_SESSION)

    if not session.thumbnail_url:
        session.thumbnail_url = PLACEHOLDER_THUMBNAIL_URL
    return session


def with_default_start(session: SessionInfo, now: datetime | None = None) -> SessionInfo:
    """Copy of session starting FALLBACK_LEAD_TIME after now, unless it has a fixed start."""
    if session.scheduled_start is not None:
        return session
    return replace(session, scheduled_start=(now or datetime.now(timezone.utc)) + FALLBACK_LEAD_TIME)
