"""Builder run configuration

Options for one BuilderRunner: output protocol, retry/interpreter behavior,
tool loop budgets and extra read-only paths. Built from environment settings
and optionally overridden by the ``builder:`` section of a YAML file.
"""

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import List, Optional

import yaml

from .config import Settings
from .patch_model import PatchFormat, RunMode

logger = logging.getLogger(__name__)


@dataclass
class BuilderConfig:
    """Configuration for a builder run"""

    mode: RunMode = RunMode.TOOL_CALLS
    patch_format: PatchFormat = PatchFormat.SEARCH_REPLACE
    fallback_to_interpreter: bool = True

    # Tool loop budget (tool_calls mode only)
    max_steps: int = 8
    max_tool_calls: int = 20

    temperature: Optional[float] = 0.1
    max_tokens: Optional[int] = None
    interpreter_max_retries: int = 1

    extra_read_only_paths: List[str] = field(default_factory=lambda: [".git"])

    def __post_init__(self):
        self.mode = RunMode(self.mode)
        self.patch_format = PatchFormat(self.patch_format)
        if self.max_steps < 1:
            raise ValueError("max_steps must be >= 1")
        if self.max_tool_calls < 0:
            raise ValueError("max_tool_calls must be >= 0")

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "BuilderConfig":
        settings = settings or Settings()
        return cls(
            mode=settings.builder_mode,
            patch_format=settings.patch_format,
            fallback_to_interpreter=settings.fallback_to_interpreter,
            max_steps=settings.max_steps,
            max_tool_calls=settings.max_tool_calls,
            temperature=settings.temperature,
            max_tokens=settings.max_tokens,
            interpreter_max_retries=settings.interpreter_max_retries,
            extra_read_only_paths=list(settings.read_only_paths),
        )

    @classmethod
    def from_yaml(cls, config_path: Path, base: Optional["BuilderConfig"] = None) -> "BuilderConfig":
        """Load configuration from the ``builder:`` section of a YAML file

        Keys missing from the file keep the values of ``base`` (defaults when
        not given).

        Args:
            config_path: Path to the YAML file
            base: Config to override

        Returns:
            BuilderConfig instance
        """
        base = base or cls()
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                config = yaml.safe_load(f) or {}
            builder_config = config.get("builder", {}) or {}

            known = {f.name for f in fields(cls)}
            unknown = sorted(set(builder_config) - known)
            if unknown:
                logger.warning(f"Ignoring unknown builder config keys in {config_path}: {unknown}")

            values = {f.name: getattr(base, f.name) for f in fields(cls)}
            values.update({key: value for key, value in builder_config.items() if key in known})
            return cls(**values)
        except Exception as e:
            logger.warning(f"Failed to load BuilderConfig: {e}, using defaults")
            return base
