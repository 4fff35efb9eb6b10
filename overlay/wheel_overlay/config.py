"""Central configuration for the wheel overlay service."""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ROOT_DIR = Path(__file__).resolve().parents[2]
DEFAULT_ENV_FILE = ROOT_DIR / ".env"


# ============================================================
# Nested Configuration Classes
# ============================================================

class WheelSettings(BaseModel):
    """Spin lifecycle timings (seconds)."""
    spin_duration: float = Field(4.0, description="Duration of the eased rotation")
    result_display: float = Field(3.0, description="How long the winning label stays visible")
    result_fade: float = Field(0.5, description="Fade-out transition after the result display")
    hide_delay: float = Field(4.0, description="Delay before the wheel container is hidden")
    frame_interval: float = Field(1.0 / 60.0, description="Animation tick interval (60 FPS)")
    min_full_turns: float = Field(3.0, description="Guaranteed full rotations per spin")
    extra_full_turns: float = Field(3.0, description="Additional random full rotations (0..n)")


class GestureSettings(BaseModel):
    """Drag/resize tuning."""
    resize_divisor_px: float = Field(200.0, description="Pointer pixels per 1.0 scale change")
    min_scale: float = Field(0.3, description="Lower scale bound")
    max_scale: float = Field(3.0, description="Upper scale bound")


class PerformanceSettings(BaseModel):
    """Queue tuning."""
    ui_event_queue_size: int = Field(64, description="Max buffered UI events per subscriber")


class Settings(BaseSettings):
    """Environment-driven settings for overlay subsystems."""

    # Remote controller
    controller_ws_url: str = Field("ws://localhost:3000/ws", description="Controller WebSocket endpoint")
    reconnect_interval_ms: int = Field(3000, description="Fixed delay before a reconnect attempt")
    connect_timeout_seconds: float = Field(10.0, description="Opening handshake timeout")

    # Local UI service
    overlay_host: str = Field("0.0.0.0", description="Host interface for local FastAPI server")
    overlay_port: int = Field(8080, description="Port for FastAPI server")

    # Overlay behaviour
    config_mode: bool = Field(False, description="Start in configuration (drag/resize) mode")
    viewport_width: int = Field(1920, description="Assumed viewport width until the UI reports one")
    viewport_height: int = Field(1080, description="Assumed viewport height until the UI reports one")

    # Logging
    log_level: str = Field("INFO", description="Logging level")
    log_directory: Path = Field(ROOT_DIR / "logs", description="Log directory path")
    log_retention_days: int = Field(14, description="Number of log files to retain")

    # Nested Configuration Objects
    wheel: WheelSettings = Field(default_factory=WheelSettings, description="Spin lifecycle settings")
    gestures: GestureSettings = Field(default_factory=GestureSettings, description="Gesture settings")
    performance: PerformanceSettings = Field(default_factory=PerformanceSettings, description="Performance tuning")

    @field_validator("controller_ws_url")
    @classmethod
    def _check_ws_scheme(cls, value: str) -> str:
        parsed = value.strip()
        if not parsed.lower().startswith(("ws://", "wss://")):
            raise ValueError("CONTROLLER_WS_URL must use the ws:// or wss:// scheme")
        return parsed

    @property
    def reconnect_interval(self) -> float:
        return self.reconnect_interval_ms / 1000.0

    model_config = SettingsConfigDict(
        env_file=str(DEFAULT_ENV_FILE),
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache()
def get_settings(override_env_file: Optional[Path] = None) -> Settings:
    """Cached Settings instance; accepts optional env override for tests."""

    if override_env_file:
        return Settings(_env_file=str(override_env_file))
    return Settings()
