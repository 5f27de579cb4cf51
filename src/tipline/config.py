from __future__ import annotations

import os
from dataclasses import dataclass

from .constants import (
    CACHE_TTL_SECONDS,
    ERROR_ALERT_THRESHOLD,
    ERROR_WINDOW_SECONDS,
    MAX_ATTACHMENT_BYTES,
    MAX_TEXT_LENGTH,
    STATE_MAX_AGE_SECONDS,
)


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "y", "on"}


def _get_str(name: str, default: str) -> str:
    return os.getenv(name, default).strip() or default


@dataclass(frozen=True)
class Settings:
    token: str
    admin_id: int = 0
    # Where approved submissions are published.
    publish_channel_id: int = 0
    # Where moderators review incoming submissions.
    review_channel_id: int = 0
    lang: str = "en"
    sqlite_path: str = "tipline.sqlite3"
    cache_ttl_seconds: int = CACHE_TTL_SECONDS
    log_level: str = "INFO"
    message_content_intent: bool = True

    max_text_length: int = MAX_TEXT_LENGTH
    max_attachment_bytes: int = MAX_ATTACHMENT_BYTES

    # Night mute: submissions arriving in [start, end) are flagged and
    # published silently.
    night_mute_enabled: bool = False
    night_mute_start_hour: int = 0
    night_mute_end_hour: int = 7
    night_mute_timezone: str = "UTC"

    # Abandoned flows are only reclaimed when the sweep is switched on.
    state_sweep_enabled: bool = False
    state_sweep_interval_seconds: int = 600
    state_max_age_seconds: int = STATE_MAX_AGE_SECONDS

    error_alert_threshold: int = ERROR_ALERT_THRESHOLD
    error_window_seconds: int = ERROR_WINDOW_SECONDS


def load_settings() -> Settings:
    token = os.getenv("DISCORD_TOKEN", "").strip()
    if not token:
        raise RuntimeError("DISCORD_TOKEN is required")
    return Settings(
        token=token,
        admin_id=_get_int("ADMIN_ID", 0),
        publish_channel_id=_get_int("PUBLISH_CHANNEL_ID", 0),
        review_channel_id=_get_int("REVIEW_CHANNEL_ID", 0),
        lang=_get_str("LANG_CODE", "en"),
        sqlite_path=_get_str("SQLITE_PATH", "tipline.sqlite3"),
        cache_ttl_seconds=_get_int("CACHE_TTL_SECONDS", CACHE_TTL_SECONDS),
        log_level=_get_str("LOG_LEVEL", "INFO"),
        message_content_intent=_get_bool("MESSAGE_CONTENT_INTENT", True),
        max_text_length=_get_int("MAX_TEXT_LENGTH", MAX_TEXT_LENGTH),
        max_attachment_bytes=_get_int("MAX_ATTACHMENT_BYTES", MAX_ATTACHMENT_BYTES),
        night_mute_enabled=_get_bool("NIGHT_MUTE_ENABLED", False),
        night_mute_start_hour=_get_int("NIGHT_MUTE_START_HOUR", 0),
        night_mute_end_hour=_get_int("NIGHT_MUTE_END_HOUR", 7),
        night_mute_timezone=_get_str("NIGHT_MUTE_TZ", "UTC"),
        state_sweep_enabled=_get_bool("STATE_SWEEP_ENABLED", False),
        state_sweep_interval_seconds=_get_int("STATE_SWEEP_INTERVAL_SECONDS", 600),
        state_max_age_seconds=_get_int("STATE_MAX_AGE_SECONDS", STATE_MAX_AGE_SECONDS),
        error_alert_threshold=_get_int("ERROR_ALERT_THRESHOLD", ERROR_ALERT_THRESHOLD),
        error_window_seconds=_get_int("ERROR_WINDOW_SECONDS", ERROR_WINDOW_SECONDS),
    )
