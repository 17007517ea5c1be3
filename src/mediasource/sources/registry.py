"""Source selection and reference-counted handles.

open_source() picks the adapter for a path once, initializes it, and
hands back a SourceHandle. The adapter is shut down when the last
reference is released.

Selection:
- "<plugin>://<path>"    -> input plugin
- script extensions      -> script engine
- container extensions   -> WAV file
- anything else          -> input plugin (default plugin)
"""

from __future__ import annotations

import logging
from pathlib import PurePath

import numpy as np

from mediasource.adapter.native.loader import LibraryOpener
from mediasource.core.config import SourceConfig
from mediasource.models.types import MediaDescriptor
from mediasource.sources.base import SourceBase, SourceKind
from mediasource.sources.plugin import SCHEME_SEPARATOR, PluginSource
from mediasource.sources.script import ScriptSource
from mediasource.sources.wav import WavSource

logger = logging.getLogger(__name__)


def select_kind(path: str, config: SourceConfig) -> SourceKind:
    """Backend variant for a path."""
    if SCHEME_SEPARATOR in path:
        return SourceKind.PLUGIN
    suffix = PurePath(path).suffix.lower()
    if suffix in config.script_extensions:
        return SourceKind.SCRIPT
    if suffix in config.container_extensions:
        return SourceKind.CONTAINER
    return SourceKind.PLUGIN


def create_source(
    kind: SourceKind,
    config: SourceConfig,
    opener: LibraryOpener | None = None,
) -> SourceBase:
    """Construct an uninitialized adapter of the given kind."""
    if kind is SourceKind.SCRIPT:
        return ScriptSource(config, opener=opener)
    if kind is SourceKind.PLUGIN:
        return PluginSource(config, opener=opener)
    return WavSource(config)


class SourceHandle:
    """Reference-counted handle to an initialized source.

    Starts with one reference. Usage:
        with open_source("clip.avs") as source:
            luma = source.read_video_frame(0)
    """

    def __init__(self, source: SourceBase):
        self._source: SourceBase | None = source
        self._refs = 1

    def __enter__(self) -> "SourceHandle":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()

    @property
    def ref_count(self) -> int:
        return self._refs

    @property
    def kind(self) -> SourceKind:
        return self.source.kind

    @property
    def source(self) -> SourceBase:
        if self._source is None:
            raise RuntimeError("source handle has been released")
        return self._source

    def add_ref(self) -> int:
        if self._source is None:
            raise RuntimeError("source handle has been released")
        self._refs += 1
        return self._refs

    def release(self) -> int:
        """Drop one reference; the last one shuts the source down.

        Returns:
            Remaining reference count (0 once released).
        """
        if self._source is None:
            return 0
        self._refs -= 1
        if self._refs <= 0:
            source, self._source = self._source, None
            self._refs = 0
            source.shutdown()
        return self._refs

    # Uniform source contract

    def has_video(self) -> bool:
        return self.source.has_video()

    def has_audio(self) -> bool:
        return self.source.has_audio()

    def get_descriptor(self) -> MediaDescriptor:
        return self.source.descriptor

    def set_rate(self, num: int, den: int) -> None:
        self.source.set_rate(num, den)

    def read_video_frame(self, index: int) -> np.ndarray:
        return self.source.read_video_frame(index)

    def read_audio_range(self, start: int, count: int) -> np.ndarray:
        return self.source.read_audio_range(start, count)

    def read_audio_frame(self, index: int) -> np.ndarray:
        return self.source.read_audio_frame(index)


def open_source(
    path: str,
    config: SourceConfig | None = None,
    opener: LibraryOpener | None = None,
) -> SourceHandle:
    """Open a media source for path.

    Args:
        path: Input path, optionally "<plugin>://<path>".
        config: Source settings (environment defaults if omitted).
        opener: OS loader for native backends (ctypes by default).

    Returns:
        SourceHandle holding one reference.

    Raises:
        InitError: If the backend cannot be initialized. No handle is
            created and backend resources are already released.
    """
    config = config or SourceConfig.from_env()
    kind = select_kind(path, config)
    logger.info(f"Selected {kind.value} source for {path}")

    source = create_source(kind, config, opener)
    source.init(path)
    return SourceHandle(source)
