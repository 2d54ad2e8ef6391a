"""Relay configuration.

Settings are loaded from YAML defaults and overridden by environment variables
prefixed with `CAMRELAY_`.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, cast

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DROP_POLICIES = ("oldest", "newest", "random")


class RelaySettings(BaseSettings):
    """Runtime configuration loaded from YAML defaults and `CAMRELAY_` env overrides."""

    # "wasm": detection runs in the browser, the server only scores with the mock detector.
    # "server": frames are scored by the Ultralytics adapter.
    mode: str = Field("wasm", description="wasm|server")

    # Admission queue
    max_queue_size: int = 10
    drop_policy: str = Field("oldest", description="oldest|newest|random")
    # Used by upstream callers to throttle capture; not enforced here.
    target_fps: float = 15.0

    # Metrics
    metrics_window_ms: int = 30_000
    max_frame_history: int = 1000
    system_sample_interval_s: float = 5.0

    # Signaling
    require_same_room: bool = False

    # Server-mode detector
    model_name: str = "yolo11n.pt"
    confidence: float = 0.35

    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 3000

    model_config = SettingsConfigDict(env_prefix="CAMRELAY_", validate_assignment=True)

    @field_validator("mode")
    @classmethod
    def _validate_mode(cls, v: str) -> str:
        v2 = str(v).strip().lower()
        if v2 not in {"wasm", "server"}:
            raise ValueError("mode must be wasm|server")
        return v2

    @field_validator("max_queue_size")
    @classmethod
    def _validate_max_queue_size(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_queue_size must be >= 1")
        return v

    @field_validator("drop_policy")
    @classmethod
    def _validate_drop_policy(cls, v: str) -> str:
        v2 = str(v).strip().lower()
        if v2 not in DROP_POLICIES:
            raise ValueError("drop_policy must be oldest|newest|random")
        return v2

    @field_validator("target_fps")
    @classmethod
    def _validate_target_fps(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("target_fps must be > 0")
        return float(v)

    @field_validator("metrics_window_ms")
    @classmethod
    def _validate_metrics_window_ms(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("metrics_window_ms must be > 0")
        return v

    @field_validator("max_frame_history")
    @classmethod
    def _validate_max_frame_history(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_frame_history must be >= 1")
        return v

    @field_validator("system_sample_interval_s")
    @classmethod
    def _validate_system_sample_interval_s(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("system_sample_interval_s must be > 0")
        return float(v)

    @field_validator("confidence")
    @classmethod
    def _validate_confidence(cls, v: float) -> float:
        if not 0.0 < v <= 1.0:
            raise ValueError("confidence must be in (0, 1]")
        return v

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, v: str) -> str:
        v2 = str(v).strip().upper()
        if v2 not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError("log_level must be a standard logging level name")
        return v2


def settings_to_dict(settings: RelaySettings) -> dict[str, Any]:
    """Convert settings to a plain dict."""

    return cast(dict[str, Any], settings.model_dump())


def _fields_set(obj: object) -> set[str]:
    """Return the set of fields explicitly provided/overridden on a Pydantic model."""

    return set(getattr(obj, "model_fields_set", set()))


def _config_path() -> Path:
    """Return the YAML configuration path (defaults to config/camrelay.config.yml)."""

    return Path(os.getenv("CAMRELAY_CONFIG", "config/camrelay.config.yml"))


def load_settings() -> RelaySettings:
    """Load settings from YAML and environment variables.

    YAML provides defaults; environment variables override.
    """

    data: dict[str, Any] = {}
    path = _config_path()
    if path.exists():
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

    env_settings = RelaySettings()
    env_overrides: dict[str, Any] = {
        name: getattr(env_settings, name) for name in _fields_set(env_settings)
    }

    merged = {**data, **env_overrides}
    return RelaySettings(**merged)
