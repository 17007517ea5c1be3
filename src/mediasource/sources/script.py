"""Script engine (AviSynth) source.

Resources are acquired in three tiers: engine library, script
environment, current clip. They are released in reverse: clip, then
environment, then library.
"""

from __future__ import annotations

import logging
from contextlib import ExitStack
from functools import partial
from typing import Any, Callable

import numpy as np

from mediasource.adapter.media.planes import luma_from_planar
from mediasource.adapter.native.avisynth import (
    AVS_INTERFACE_25,
    AVS_PLANAR_Y,
    AvsApi,
    AVSVideoInfo,
)
from mediasource.adapter.native.loader import LibraryOpener
from mediasource.core.config import SourceConfig
from mediasource.core.errors import (
    AudioReadError,
    FrameReadError,
    ScriptInvocationFailure,
    UnsupportedFormat,
)
from mediasource.core.timing import AudioRange
from mediasource.models.types import MediaDescriptor
from mediasource.normalize.clip import ClipNormalizer, ClipSlot, NormalizedClip
from mediasource.sources.base import SourceBase, SourceKind

logger = logging.getLogger(__name__)

ApiFactory = Callable[[str | None], Any]


class ScriptSource(SourceBase):
    """Source backed by a script evaluated in the AviSynth engine."""

    kind = SourceKind.SCRIPT

    def __init__(
        self,
        config: SourceConfig | None = None,
        *,
        opener: LibraryOpener | None = None,
        api_factory: ApiFactory | None = None,
    ):
        """Initialize script source.

        Args:
            config: Source settings (environment defaults if omitted).
            opener: OS loader used to open the engine library.
            api_factory: Builds the engine API from a library name; replaces
                the default AvsApi.load(opener, name).
        """
        super().__init__(config)
        self._api_factory = api_factory or partial(AvsApi.load, opener)
        self._api = None
        self._env: int | None = None
        self._slot: ClipSlot | None = None
        self.normalization: NormalizedClip | None = None

    def _open(self, path: str, stack: ExitStack) -> MediaDescriptor:
        api = self._api_factory(self.config.script_library)
        stack.callback(api.close)
        if api.features.high_bit_depth:
            logger.debug("Engine reports high bit depth formats")

        env = api.create_environment(AVS_INTERFACE_25)
        stack.callback(api.delete_environment, env)
        error = api.environment_error(env)
        if error:
            raise ScriptInvocationFailure(error)
        if not env:
            raise ScriptInvocationFailure("failed to create script environment")

        slot = ClipSlot(api)
        stack.callback(slot.release)

        logger.info(f"Importing script {path}")
        normalized = ClipNormalizer(api, env, slot).run(path)

        self._api, self._env, self._slot = api, env, slot
        self.normalization = normalized
        return self._describe(normalized, audio_supported=api.features.audio)

    @staticmethod
    def _describe(normalized: NormalizedClip, audio_supported: bool) -> MediaDescriptor:
        info = normalized.info
        if info.fps_numerator == 0 or info.fps_denominator == 0:
            raise UnsupportedFormat(
                f"invalid frame rate {info.fps_numerator}/{info.fps_denominator}"
            )
        has_audio = info.has_audio and audio_supported
        return MediaDescriptor(
            has_video=True,
            has_audio=has_audio,
            random_access=True,
            frame_rate_num=info.fps_numerator,
            frame_rate_den=info.fps_denominator,
            frame_count=max(info.num_frames, 0),
            width=info.width,
            height=info.height,
            interlaced=normalized.interlaced,
            top_field_first=normalized.top_field_first,
            audio_sample_rate=info.audio_samples_per_second if has_audio else 0,
            audio_channel_count=info.nchannels if has_audio else 0,
            audio_sample_count=info.num_audio_samples if has_audio else 0,
        )

    @property
    def video_info(self) -> AVSVideoInfo | None:
        """Video info of the normalized clip."""
        return self.normalization.info if self.normalization else None

    def _current_clip(self) -> int | None:
        return self._slot.clip if self._slot is not None else None

    def read_video_frame(self, index: int) -> np.ndarray:
        clip = self._current_clip()
        if clip is None:
            raise FrameReadError(index, "source is not open")

        descriptor = self.descriptor
        frame = self._api.get_frame(clip, index)
        try:
            error = self._api.clip_error(clip)
            if error:
                raise FrameReadError(index, error)
            if not frame:
                raise FrameReadError(index, "engine returned no frame")
            pitch = self._api.plane_pitch(frame, AVS_PLANAR_Y)
            address = self._api.plane_pointer(frame, AVS_PLANAR_Y)
            if not address:
                raise FrameReadError(index, "frame has no luma plane")
            return luma_from_planar(address, pitch, descriptor.width, descriptor.height)
        finally:
            self._api.release_frame(frame)

    def read_audio_range(self, start: int, count: int) -> np.ndarray:
        clip = self._current_clip()
        if clip is None:
            raise AudioReadError("source is not open")
        descriptor = self.descriptor
        if not descriptor.has_audio:
            raise AudioReadError("source has no audio")
        if start < 0 or count < 0:
            raise AudioReadError(f"invalid audio range: start={start} count={count}")

        window = AudioRange(start, start + count).clamp(descriptor.audio_sample_count)
        if window.count == 0:
            return self._empty_audio(descriptor.audio_channel_count)

        buffer = np.zeros((window.count, descriptor.audio_channel_count), dtype=np.int16)
        self._api.get_audio(clip, buffer, window.start, window.count)
        error = self._api.clip_error(clip)
        if error:
            raise AudioReadError(error)
        return buffer

    def shutdown(self) -> None:
        super().shutdown()
        self._slot = None
        self._env = None
