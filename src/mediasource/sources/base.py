"""Base source interface.

A source adapts one backend (script engine, input plugin, container file)
to a single frame-indexed contract:

- init(path) -> MediaDescriptor, exactly once, all-or-nothing
- read_video_frame(index) -> canonical luma plane
- read_audio_range(start, count) -> samples, short only at end of stream
- set_rate(num, den), shutdown()

Backend resources are acquired inside an ExitStack during init. On failure
the stack unwinds whatever was acquired; on success it is kept and
shutdown() unwinds it in reverse acquisition order.
"""

from __future__ import annotations

import enum
import logging
from abc import ABC, abstractmethod
from contextlib import ExitStack
from typing import ClassVar

import numpy as np

from mediasource.core.config import SourceConfig
from mediasource.core.errors import AudioReadError, InitError
from mediasource.core.timing import AudioRange, frame_to_sample_range
from mediasource.models.types import MediaDescriptor

logger = logging.getLogger(__name__)


class SourceKind(str, enum.Enum):
    """Closed set of backend variants."""

    SCRIPT = "script"
    PLUGIN = "plugin"
    CONTAINER = "container"


class SourceBase(ABC):
    """Abstract base class for media sources.

    Usage:
        with WavSource() as source:
            source.init("input.wav")
            samples = source.read_audio_range(0, 1024)
    """

    kind: ClassVar[SourceKind]

    def __init__(self, config: SourceConfig | None = None):
        self.config = config or SourceConfig.from_env()
        self._descriptor: MediaDescriptor | None = None
        self._resources = ExitStack()
        self._initialized = False

    def __enter__(self) -> "SourceBase":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()

    def __del__(self) -> None:
        if getattr(self, "_resources", None) is not None:
            self.shutdown()

    def init(self, path: str) -> MediaDescriptor:
        """Open the backend for path.

        Args:
            path: Input path (backend-specific syntax).

        Returns:
            MediaDescriptor of the opened stream.

        Raises:
            InitError: If called twice, or any subclass on failure. Anything
                acquired before the failure is released first.
        """
        if self._initialized:
            raise InitError(f"{type(self).__name__} is already initialized")
        self._initialized = True

        with ExitStack() as stack:
            descriptor = self._open(path, stack)
            self._resources = stack.pop_all()

        self._descriptor = descriptor
        logger.info(
            f"{type(self).__name__} ready: video={descriptor.has_video} "
            f"audio={descriptor.has_audio} frames={descriptor.frame_count}"
        )
        return descriptor

    @abstractmethod
    def _open(self, path: str, stack: ExitStack) -> MediaDescriptor:
        """Acquire backend resources onto stack and describe the stream."""
        pass

    @property
    def descriptor(self) -> MediaDescriptor:
        """Stream descriptor (available after init)."""
        if self._descriptor is None:
            raise InitError(f"{type(self).__name__} is not initialized")
        return self._descriptor

    def get_descriptor(self) -> MediaDescriptor:
        return self.descriptor

    def has_video(self) -> bool:
        return self._descriptor is not None and self._descriptor.has_video

    def has_audio(self) -> bool:
        return self._descriptor is not None and self._descriptor.has_audio

    def set_rate(self, num: int, den: int) -> None:
        """Override the frame rate used for audio timing.

        Frame count and audio sample count are not rescaled.

        Raises:
            ValueError: If num or den is not positive.
        """
        if num <= 0 or den <= 0:
            raise ValueError(f"Invalid frame rate: {num}/{den}")
        self._descriptor = self.descriptor.with_rate(num, den)

    @abstractmethod
    def read_video_frame(self, index: int) -> np.ndarray:
        """Read one frame as a canonical luma plane.

        Args:
            index: Frame index, 0 <= index < frame_count (not checked).

        Returns:
            (plane_height, plane_width) uint8 array.

        Raises:
            FrameReadError: If the backend fails to produce the frame.
        """
        pass

    @abstractmethod
    def read_audio_range(self, start: int, count: int) -> np.ndarray:
        """Read count samples starting at start.

        Returns:
            (samples_read, channels) array. Fewer rows than count only at
            end of stream; zero rows if start is past the end.

        Raises:
            AudioReadError: If the backend fails.
        """
        pass

    def audio_range_for_frame(self, index: int) -> AudioRange:
        """Sample range that plays during a video frame."""
        descriptor = self.descriptor
        if descriptor.frame_rate_num == 0:
            raise AudioReadError("frame rate is not set")
        return frame_to_sample_range(
            index,
            descriptor.frame_rate_num,
            descriptor.frame_rate_den,
            descriptor.audio_sample_rate,
        )

    def read_audio_frame(self, index: int) -> np.ndarray:
        """Read the audio samples that play during a video frame."""
        audio_range = self.audio_range_for_frame(index)
        return self.read_audio_range(audio_range.start, audio_range.count)

    def shutdown(self) -> None:
        """Release backend resources. Safe to call any number of times."""
        self._resources.close()

    def _empty_audio(self, channels: int, dtype=np.int16) -> np.ndarray:
        return np.zeros((0, channels), dtype=dtype)
