"""Guard configuration loaded from ``PIN_GUARD_*`` environment variables.

Tiers are given in seconds either as CSV (``"3:60,5:300,10:1800"``) or as JSON
(``[[3, 60], [5, 300]]`` or ``["3:60", "5:300"]``).
"""

from __future__ import annotations

import json
from typing import Any, List, Literal, Optional, Tuple

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources.base import PydanticBaseSettingsSource
from pydantic_settings.sources.providers.env import EnvSettingsSource

from pinguard.policy import LockoutPolicy

_DEFAULT_TIERS: Tuple[Tuple[int, int], ...] = ((3, 60), (5, 300), (10, 1800))

FailMode = Literal["raise", "deny"]
StoreBackend = Literal["memory", "redis"]


def _parse_pair(item: Any) -> Tuple[int, int]:
    if isinstance(item, str):
        left, sep, right = item.partition(":")
        if not sep:
            raise ValueError(f"tier must look like 'threshold:seconds', got {item!r}")
        return int(left.strip()), int(right.strip())
    if isinstance(item, (list, tuple)) and len(item) == 2:
        return int(item[0]), int(item[1])
    raise ValueError(f"unrecognised tier entry: {item!r}")


def _parse_tiers(value: str) -> List[Tuple[int, int]]:
    text = value.strip()
    if not text:
        return []
    if text.startswith("["):
        decoded = json.loads(text)
        return [_parse_pair(item) for item in decoded]
    return [_parse_pair(part) for part in text.split(",") if part.strip()]


class _CsvFriendlyEnvSettingsSource(EnvSettingsSource):
    def decode_complex_value(self, field_name: str, field: Any, value: Any) -> Any:
        try:
            return super().decode_complex_value(field_name, field, value)
        except ValueError:
            return value


class GuardSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="PIN_GUARD_", extra="ignore")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        if isinstance(env_settings, EnvSettingsSource):
            env_settings = _CsvFriendlyEnvSettingsSource(
                settings_cls,
                case_sensitive=env_settings.case_sensitive,
                env_prefix=env_settings.env_prefix,
                env_nested_delimiter=env_settings.env_nested_delimiter,
                env_ignore_empty=env_settings.env_ignore_empty,
                env_parse_none_str=env_settings.env_parse_none_str,
                env_parse_enums=env_settings.env_parse_enums,
            )
        return init_settings, env_settings, dotenv_settings, file_secret_settings

    # --- Session trust window / countdown ---
    session_duration_s: int = Field(300, ge=0, le=86400)
    poll_interval_s: float = Field(1.0, gt=0.0, le=60.0)

    # --- Lockout tiers: (threshold, seconds) ---
    tiers: List[Tuple[int, int]] = Field(default_factory=lambda: list(_DEFAULT_TIERS))

    # --- Storage ---
    store_backend: StoreBackend = "memory"
    redis_url: str = "memory://"
    redis_namespace: str = "pinguard"
    redis_socket_timeout_s: float = Field(2.0, gt=0.0, le=30.0)

    # --- Failure handling ---
    fail_mode: FailMode = "raise"

    # --- Logging ---
    log_level: str = "INFO"
    log_json: bool = True
    log_pii_ok: bool = False

    # --- Inactivity app-lock ---
    inactivity_timeout_s: int = Field(300, ge=1)
    inactivity_check_s: float = Field(10.0, gt=0.0)

    @field_validator("tiers", mode="before")
    @classmethod
    def _parse_tiers_field(cls, value: object) -> object:
        if isinstance(value, str):
            return _parse_tiers(value)
        if isinstance(value, (list, tuple)):
            return [_parse_pair(item) for item in value]
        return value

    @field_validator("tiers")
    @classmethod
    def _tiers_form_policy(cls, value: List[Tuple[int, int]]) -> List[Tuple[int, int]]:
        # LockoutPolicy raises ValueError on bad ladders; pydantic surfaces it
        # as a ValidationError when the settings load.
        LockoutPolicy.from_pairs((n, secs * 1000) for n, secs in value)
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_level(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().upper() or "INFO"
        return value

    @property
    def session_duration_ms(self) -> int:
        return int(self.session_duration_s) * 1000

    def policy(self) -> LockoutPolicy:
        return LockoutPolicy.from_pairs((n, secs * 1000) for n, secs in self.tiers)


_settings: Optional[GuardSettings] = None


def get_settings() -> GuardSettings:
    global _settings
    if _settings is None:
        _settings = GuardSettings()
    return _settings


def reset_settings() -> None:
    global _settings
    _settings = None
