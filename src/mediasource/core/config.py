"""Configuration for media sources.

Settings come from defaults, optionally overridden by environment
variables:

- MEDIASOURCE_DEFAULT_PLUGIN: input plugin used when a path has no scheme
- MEDIASOURCE_SCRIPT_LIBRARY: script engine library name or path
- MEDIASOURCE_WAV_SCAN_LIMIT: bytes scanned for a WAV data chunk
"""

from __future__ import annotations

import logging
import os
from typing import Mapping

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

ENV_PREFIX = "MEDIASOURCE_"

DEFAULT_PLUGIN = "avsinp.aui"
DEFAULT_WAV_SCAN_LIMIT = 1_000_000


class SourceConfig(BaseModel):
    """Settings shared by all source adapters."""

    model_config = {"frozen": True}

    default_plugin: str = DEFAULT_PLUGIN
    script_library: str | None = None
    wav_scan_limit: int = Field(default=DEFAULT_WAV_SCAN_LIMIT, gt=0)
    script_extensions: tuple[str, ...] = (".avs", ".avsi")
    container_extensions: tuple[str, ...] = (".wav",)

    @field_validator("script_extensions", "container_extensions")
    @classmethod
    def _lowercase_extensions(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(ext.lower() for ext in value)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "SourceConfig":
        """Build config from environment variables.

        Args:
            environ: Mapping to read from. Defaults to os.environ.

        Returns:
            SourceConfig with any overrides applied.
        """
        env = os.environ if environ is None else environ
        overrides: dict[str, object] = {}

        if plugin := env.get(f"{ENV_PREFIX}DEFAULT_PLUGIN"):
            overrides["default_plugin"] = plugin
        if library := env.get(f"{ENV_PREFIX}SCRIPT_LIBRARY"):
            overrides["script_library"] = library
        if limit := env.get(f"{ENV_PREFIX}WAV_SCAN_LIMIT"):
            overrides["wav_scan_limit"] = limit

        if overrides:
            logger.debug(f"Config overrides from environment: {sorted(overrides)}")
        return cls(**overrides)
