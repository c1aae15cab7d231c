"""Configuration module for buildgate settings.

Values come from ``BUILDGATE_*`` environment variables or a local ``.env``
file. BuilderConfig (builder_config.py) turns them into runner options.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .patch_model import PatchFormat, RunMode


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="BUILDGATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Output protocol negotiation
    builder_mode: RunMode = RunMode.TOOL_CALLS
    patch_format: PatchFormat = PatchFormat.SEARCH_REPLACE
    fallback_to_interpreter: bool = True
    interpreter_max_retries: int = Field(default=1, ge=0)

    # Tool loop budget
    max_steps: int = Field(default=8, ge=1)
    max_tool_calls: int = Field(default=20, ge=0)

    # Model call defaults
    temperature: Optional[float] = 0.1
    max_tokens: Optional[int] = None
    anthropic_model: str = "claude-sonnet-4-5"

    # Paths no run may write, on top of the bundle's read_only_paths
    read_only_paths: List[str] = Field(default_factory=lambda: [".git"])

    log_level: str = "INFO"
    log_dir: Optional[str] = None


settings = Settings()
