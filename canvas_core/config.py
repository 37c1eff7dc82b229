"""
Canvas configuration.

All tunables are read from environment variables prefixed with ``CANVAS_``
(or a local ``.env`` file). Pure modules keep their own defaults that match
these values; only the store, the backend and the CLI read settings.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings for the canvas core and its HTTP backend."""

    model_config = SettingsConfigDict(
        env_prefix="CANVAS_",
        env_file=".env",
        extra="ignore",
    )

    # === Logging ===
    log_level: str = Field(default="INFO", description="Root logging level")
    log_json: bool = Field(default=False, description="Render logs as JSON lines")

    # === API ===
    api_host: str = Field(default="127.0.0.1", description="Backend bind host")
    api_port: int = Field(default=8765, description="Backend bind port")
    cors_origins: list[str] = Field(
        default_factory=lambda: [
            "http://localhost:5173",
            "http://localhost:3000",
            "http://127.0.0.1:5173",
        ],
        description="Origins allowed to call the API",
    )

    # === Persistence ===
    storage_path: Path = Field(
        default=Path("~/.canvas/state.json"),
        description="Where the canvas state blob is saved",
    )

    # === Editing ===
    history_limit: int = Field(default=50, ge=1, description="Undo ring-buffer size")
    snap_threshold: float = Field(default=35.0, gt=0, description="Arrow snap radius")
    guide_snap_distance: float = Field(default=10.0, ge=0, description="Guide snap px")

    # === Layout ===
    node_spacing: float = Field(default=160.0, gt=0)
    layer_spacing: float = Field(default=220.0, gt=0)

    @field_validator("storage_path")
    @classmethod
    def expand_storage_path(cls, value: Path) -> Path:
        return value.expanduser()

    @field_validator("log_level")
    @classmethod
    def upper_log_level(cls, value: str) -> str:
        return value.upper()


@lru_cache()
def get_settings() -> Settings:
    """Return the process-wide settings (cached)."""
    return Settings()
