from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone

import pytest

from tipline.config import Settings, load_settings
from tipline.utils import display_name, is_night_mode, submitter_label, truncate


def test_token_is_required(monkeypatch):
    monkeypatch.delenv("DISCORD_TOKEN", raising=False)
    with pytest.raises(RuntimeError):
        load_settings()


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("DISCORD_TOKEN", "abc")
    monkeypatch.setenv("REVIEW_CHANNEL_ID", "500")
    monkeypatch.setenv("PUBLISH_CHANNEL_ID", "not-a-number")
    monkeypatch.setenv("NIGHT_MUTE_ENABLED", "yes")
    monkeypatch.setenv("CACHE_TTL_SECONDS", "0")

    settings = load_settings()

    assert settings.token == "abc"
    assert settings.review_channel_id == 500
    assert settings.publish_channel_id == 0
    assert settings.night_mute_enabled is True
    assert settings.cache_ttl_seconds == 0


@pytest.mark.parametrize(
    "start, end, hour, expected",
    [
        (0, 7, 3, True),
        (0, 7, 7, False),
        (22, 6, 23, True),
        (22, 6, 5, True),
        (22, 6, 12, False),
    ],
)
def test_night_mode_window(start, end, hour, expected):
    settings = Settings(token="t", night_mute_enabled=True, night_mute_start_hour=start, night_mute_end_hour=end)
    now = datetime(2024, 1, 1, hour, 30, tzinfo=timezone.utc)
    assert is_night_mode(settings, now) is expected


def test_night_mode_off_and_bad_timezone():
    now = datetime(2024, 1, 1, 3, tzinfo=timezone.utc)
    settings = Settings(token="t", night_mute_enabled=False)
    assert is_night_mode(settings, now) is False
    broken = replace(settings, night_mute_enabled=True, night_mute_timezone="Nowhere/Special")
    assert is_night_mode(broken, now) is True


def test_name_helpers():
    assert display_name("alice", "Alice A") == "@alice"
    assert display_name(None, "  Alice A ") == "Alice A"
    assert display_name() == "Unknown user"
    assert submitter_label("@alice", anonymous=True) == "Anonymous"
    assert truncate("abcdef", 4) == "abc…"
    assert truncate("abc", 4) == "abc"
