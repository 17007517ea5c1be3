"""Script clip normalization to canonical format.

Brings whatever clip a script returns into the shape the sources expose:
- serialized access for multi-threaded scripts (distributor)
- whole frames (fields woven)
- planar 4:2:0 video
- 16-bit audio

Each stage either leaves the clip alone or replaces it with a transform's
result. Replacement takes the new clip before releasing anything, then
releases the superseded value, then the superseded clip, so no stage ever
holds a dangling clip or leaks the previous one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

from mediasource.adapter.native.avisynth import AvsApi, AVSValue, AVSVideoInfo
from mediasource.core.errors import ScriptInvocationFailure, UnsupportedFormat

logger = logging.getLogger(__name__)

# GetMTMode values that need a Distributor in front of the clip
_MT_MODES_NEEDING_DISTRIBUTOR = range(1, 5)

# Planar 4:2:0 conversions, newest name first
CANONICAL_COLORSPACE_FUNCTIONS = ("ConvertToY420", "ConvertToYV12")
CANONICAL_AUDIO_BYTES = 2


class ClipSlot:
    """Current clip of a script environment.

    Owns one clip reference; replace() and release() drop the old one.
    """

    def __init__(self, api: AvsApi):
        self._api = api
        self.clip: int | None = None

    def replace(self, clip: int | None) -> None:
        previous, self.clip = self.clip, clip
        self._api.release_clip(previous)

    def release(self) -> None:
        self.replace(None)


@dataclass
class NormalizedClip:
    """Outcome of normalization."""

    info: AVSVideoInfo
    interlaced: bool = False
    top_field_first: bool = False
    stages: list[str] = field(default_factory=list)


class ClipNormalizer:
    """Import a script and normalize its clip into a ClipSlot.

    The slot keeps the final clip; every intermediate script value is
    released before run() returns, including on failure.
    """

    def __init__(self, api: AvsApi, env: int | None, slot: ClipSlot):
        self._api = api
        self._env = env
        self._slot = slot
        self._value: AVSValue | None = None
        self._info: AVSVideoInfo | None = None
        self._stages: list[str] = []

    def run(self, path: str) -> NormalizedClip:
        """Import path and normalize the resulting clip.

        Raises:
            ScriptInvocationFailure: If the script fails or returns no clip.
            UnsupportedFormat: If the clip has no video or a conversion fails.
        """
        try:
            self._import(path)
            self._apply_distributor()
            self._take_clip()
            interlaced, tff = self._weave()
            self._convert_colorspace(interlaced)
            self._convert_audio()
        finally:
            self._drop_value()

        return NormalizedClip(
            info=self._info,
            interlaced=interlaced,
            top_field_first=tff,
            stages=list(self._stages),
        )

    def _import(self, path: str) -> None:
        result = self._api.invoke(self._env, "Import", AVSValue.string(path))
        if result.is_error():
            message = result.as_string() or f"Import failed for {path}"
            self._api.release_value(result)
            raise ScriptInvocationFailure(message)
        self._value = result

    def _apply_distributor(self) -> None:
        if not self._api.function_exists(self._env, "GetMTMode"):
            return

        mt_mode = self._api.invoke(self._env, "GetMTMode", AVSValue.boolean(False))
        mode = mt_mode.as_int() if mt_mode.is_int() else 0
        self._api.release_value(mt_mode)
        if mode not in _MT_MODES_NEEDING_DISTRIBUTOR:
            return

        logger.info(f"Multi-threaded script (MT mode {mode}), adding Distributor")
        wrapped = self._api.invoke(self._env, "Distributor", self._value)
        if wrapped.is_error():
            logger.warning(f"Distributor failed: {wrapped.as_string()}")
            self._api.release_value(wrapped)
            return
        previous, self._value = self._value, wrapped
        self._api.release_value(previous)
        self._stages.append("Distributor")

    def _take_clip(self) -> None:
        if not self._value.is_clip():
            raise ScriptInvocationFailure("script did not return a video clip")
        self._slot.replace(self._api.take_clip(self._value, self._env))
        self._info = self._api.video_info(self._slot.clip)
        if not self._info.has_video:
            raise UnsupportedFormat("clip has no video")

    def _weave(self) -> tuple[bool, bool]:
        if not self._info.is_field_based:
            return False, False
        logger.info("Field-based input, weaving fields into frames")
        self._transform("Weave", self._value, None, "weave failed")
        return True, self._info.is_tff

    def _convert_colorspace(self, interlaced: bool) -> None:
        if self._info.is_planar:
            return
        function = next(
            (
                name
                for name in CANONICAL_COLORSPACE_FUNCTIONS
                if self._api.function_exists(self._env, name)
            ),
            CANONICAL_COLORSPACE_FUNCTIONS[0],
        )
        logger.info(f"Converting clip to planar 4:2:0 with {function}")
        args = AVSValue.array([self._value, AVSValue.boolean(interlaced)])
        self._transform(function, args, [None, "interlaced"], "colorspace conversion failed")

    def _convert_audio(self) -> None:
        if not self._info.has_audio:
            return
        if self._info.bytes_per_channel_sample == CANONICAL_AUDIO_BYTES:
            return
        logger.info("Converting clip audio to 16 bit")
        self._transform("ConvertAudioTo16bit", self._value, None, "audio conversion failed")

    def _transform(
        self,
        name: str,
        args: AVSValue,
        arg_names: Sequence[str | None] | None,
        failure: str,
    ) -> None:
        result = self._api.invoke(self._env, name, args, arg_names)
        if result.is_error():
            logger.warning(f"{name} failed: {result.as_string()}")
            self._api.release_value(result)
            raise UnsupportedFormat(failure)

        # Take the new clip first; the superseded value and clip go after
        clip = self._api.take_clip(result, self._env)
        previous, self._value = self._value, result
        self._api.release_value(previous)
        self._slot.replace(clip)
        self._info = self._api.video_info(clip)
        self._stages.append(name)

    def _drop_value(self) -> None:
        if self._value is not None:
            value, self._value = self._value, None
            self._api.release_value(value)
