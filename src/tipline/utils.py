from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .config import Settings
from .constants import ANONYMOUS_NAME, UNKNOWN_NAME

log = logging.getLogger("tipline.utils")


def display_name(username: Optional[str] = None, name: Optional[str] = None) -> str:
    if username:
        return f"@{username}"
    return (name or "").strip() or UNKNOWN_NAME


def submitter_label(name: str, anonymous: bool) -> str:
    return ANONYMOUS_NAME if anonymous else name


def format_timestamp(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def truncate(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[: max_length - 1] + "…"


def is_night_mode(settings: Settings, now: Optional[datetime] = None) -> bool:
    """True when night mute is on and the local hour falls in [start, end)."""
    if not settings.night_mute_enabled:
        return False
    try:
        tz = ZoneInfo(settings.night_mute_timezone)
    except (ZoneInfoNotFoundError, ValueError):
        log.warning("Unknown NIGHT_MUTE_TZ %r; falling back to UTC", settings.night_mute_timezone)
        tz = ZoneInfo("UTC")
    hour = (now or datetime.now(timezone.utc)).astimezone(tz).hour
    start, end = settings.night_mute_start_hour, settings.night_mute_end_hour
    if start <= end:
        return start <= hour < end
    # Window wraps midnight, e.g. 22 -> 6
    return hour >= start or hour < end
