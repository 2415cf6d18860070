from __future__ import annotations

import pytest
from pydantic import ValidationError

from pinguard.settings import GuardSettings, get_settings, reset_settings


def test_defaults() -> None:
    s = GuardSettings()
    assert s.session_duration_ms == 300_000
    assert s.poll_interval_s == 1.0
    assert s.fail_mode == "raise"
    assert s.policy().as_pairs() == ((3, 60_000), (5, 300_000), (10, 1_800_000))


def test_tiers_from_csv_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PIN_GUARD_TIERS", "2:30, 4:120")
    s = GuardSettings()
    assert s.tiers == [(2, 30), (4, 120)]
    assert s.policy().tier(2) == 30_000


def test_tiers_from_json_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PIN_GUARD_TIERS", "[[3, 60], [6, 600]]")
    s = GuardSettings()
    assert s.policy().as_pairs() == ((3, 60_000), (6, 600_000))


def test_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PIN_GUARD_SESSION_DURATION_S", "60")
    monkeypatch.setenv("PIN_GUARD_FAIL_MODE", "deny")
    monkeypatch.setenv("PIN_GUARD_LOG_LEVEL", "debug")
    s = GuardSettings()
    assert s.session_duration_ms == 60_000
    assert s.fail_mode == "deny"
    assert s.log_level == "DEBUG"


def test_invalid_fail_mode_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PIN_GUARD_FAIL_MODE", "open")
    with pytest.raises(ValidationError):
        GuardSettings()


def test_get_settings_is_cached_until_reset() -> None:
    first = get_settings()
    assert get_settings() is first
    reset_settings()
    assert get_settings() is not first


@pytest.mark.parametrize("raw", ["3:0", "3:60,3:120", "3:300,5:60", "0:60"])
def test_invalid_tiers_rejected_at_load(monkeypatch: pytest.MonkeyPatch, raw: str) -> None:
    monkeypatch.setenv("PIN_GUARD_TIERS", raw)
    with pytest.raises(ValidationError):
        GuardSettings()


def test_invalid_tiers_rejected_from_init() -> None:
    with pytest.raises(ValidationError):
        GuardSettings(tiers="3:0")
