"""Legacy input plugin (AviUtl .aui) source.

Paths may name the plugin explicitly, "<plugin>://<path>"; otherwise the
configured default plugin is used.
"""

from __future__ import annotations

import ctypes
import logging
import os
import sys
from contextlib import ExitStack

import numpy as np

from mediasource.adapter.media.planes import luma_from_packed
from mediasource.adapter.native.aviutl import (
    INPUT_INFO_FLAG_AUDIO,
    INPUT_INFO_FLAG_VIDEO,
    INPUT_INFO_FLAG_VIDEO_RANDOM_ACCESS,
    PLUGIN_ENTRY_POINT,
    PLUGIN_SYMBOLS,
    InputInfo,
    InputPluginTable,
    plugin_table_at,
)
from mediasource.adapter.native.loader import CtypesOpener, LibraryOpener, load_symbols
from mediasource.core.config import SourceConfig
from mediasource.core.errors import (
    AudioReadError,
    FrameReadError,
    InitError,
    UnsupportedFormat,
)
from mediasource.core.timing import AudioRange
from mediasource.models.types import MediaDescriptor
from mediasource.sources.base import SourceBase, SourceKind

logger = logging.getLogger(__name__)

SCHEME_SEPARATOR = "://"

# Packed YUY2: two bytes per pixel
_PACKED_BYTES_PER_PIXEL = 2

# Plugin audio is passed through as 16-bit PCM
_PCM_SAMPLE_BYTES = 2


def split_plugin_path(path: str, default_plugin: str) -> tuple[str, str]:
    """Split "<plugin>://<path>" into (plugin, path).

    Examples:
        >>> split_plugin_path("lwinput.aui://movie.mp4", "avsinp.aui")
        ('lwinput.aui', 'movie.mp4')
        >>> split_plugin_path("movie.avi", "avsinp.aui")
        ('avsinp.aui', 'movie.avi')
    """
    plugin, separator, target = path.partition(SCHEME_SEPARATOR)
    if not separator:
        return default_plugin, path
    return plugin, target


def _encode_path(path: str) -> bytes:
    # Plugins take narrow strings in the system code page
    if sys.platform == "win32":
        return path.encode("mbcs")
    return os.fsencode(path)


class PluginSource(SourceBase):
    """Source backed by a legacy binary input plugin."""

    kind = SourceKind.PLUGIN

    def __init__(
        self,
        config: SourceConfig | None = None,
        *,
        opener: LibraryOpener | None = None,
    ):
        super().__init__(config)
        self._opener = opener or CtypesOpener()
        self._table: InputPluginTable | None = None
        self._handle: int | None = None
        self._block_align = 0
        self.plugin_name: str | None = None

    def _open(self, path: str, stack: ExitStack) -> MediaDescriptor:
        plugin_name, target = split_plugin_path(path, self.config.default_plugin)
        logger.info(f"Opening {target} with input plugin {plugin_name}")

        symbols = stack.enter_context(
            load_symbols(self._opener, plugin_name, PLUGIN_SYMBOLS)
        )
        address = symbols[PLUGIN_ENTRY_POINT]()
        if not address:
            raise InitError(f"{plugin_name} is not an input plugin")
        table = plugin_table_at(address)

        if table.func_init:
            if not table.func_init():
                raise InitError(f"{plugin_name}: func_init() failed")
            if table.func_exit:
                stack.callback(table.func_exit)

        handle = table.func_open(_encode_path(target))
        if not handle:
            raise InitError(f"{plugin_name}: func_open() failed for {target}")
        if table.func_close:
            stack.callback(table.func_close, handle)

        info = InputInfo()
        if not table.func_info_get(handle, ctypes.byref(info)):
            raise InitError(f"{plugin_name}: func_info_get() failed")

        descriptor = self._describe(info)
        self._table, self._handle = table, handle
        self.plugin_name = plugin_name
        return descriptor

    def _describe(self, info: InputInfo) -> MediaDescriptor:
        has_video = bool(info.flag & INPUT_INFO_FLAG_VIDEO) and bool(info.format)
        has_audio = bool(info.flag & INPUT_INFO_FLAG_AUDIO) and bool(info.audio_format)

        width = height = 0
        if has_video:
            bitmap = info.format.contents
            width, height = bitmap.biWidth, abs(bitmap.biHeight)

        sample_rate = channels = 0
        if has_audio:
            wave = info.audio_format.contents
            sample_rate, channels = wave.nSamplesPerSec, wave.nChannels
            block_align = channels * _PCM_SAMPLE_BYTES
            if wave.nBlockAlign and wave.nBlockAlign != block_align:
                raise UnsupportedFormat(
                    f"plugin audio block align {wave.nBlockAlign} is not "
                    f"16-bit PCM for {channels} channels"
                )
            self._block_align = block_align

        rate, scale = info.rate, info.scale
        if rate <= 0 or scale <= 0:
            rate, scale = 0, 1

        return MediaDescriptor(
            has_video=has_video,
            has_audio=has_audio,
            random_access=bool(info.flag & INPUT_INFO_FLAG_VIDEO_RANDOM_ACCESS),
            frame_rate_num=rate,
            frame_rate_den=scale,
            frame_count=max(info.n, 0),
            width=width,
            height=height,
            audio_sample_rate=sample_rate,
            audio_channel_count=channels,
            audio_sample_count=max(info.audio_n, -1) if has_audio else 0,
        )

    def read_video_frame(self, index: int) -> np.ndarray:
        if self._table is None:
            raise FrameReadError(index, "source is not open")
        descriptor = self.descriptor
        if not descriptor.has_video:
            raise FrameReadError(index, "source has no video")

        width, height = descriptor.width, descriptor.height
        buffer = np.zeros(_PACKED_BYTES_PER_PIXEL * width * height, dtype=np.uint8)
        read = self._table.func_read_video(
            self._handle, index, buffer.ctypes.data_as(ctypes.c_void_p)
        )
        if read == 0:
            raise FrameReadError(index, f"{self.plugin_name}: func_read_video() failed")
        return luma_from_packed(buffer, width, height)

    def read_audio_range(self, start: int, count: int) -> np.ndarray:
        if self._table is None:
            raise AudioReadError("source is not open")
        descriptor = self.descriptor
        if not descriptor.has_audio:
            raise AudioReadError("source has no audio")
        if start < 0 or count < 0:
            raise AudioReadError(f"invalid audio range: start={start} count={count}")

        channels = descriptor.audio_channel_count
        window = AudioRange(start, start + count).clamp(descriptor.audio_sample_count)
        if window.count == 0:
            return self._empty_audio(channels)

        buffer = np.zeros(window.count * self._block_align, dtype=np.uint8)
        read = self._table.func_read_audio(
            self._handle,
            window.start,
            window.count,
            buffer.ctypes.data_as(ctypes.c_void_p),
        )
        if read < 0:
            raise AudioReadError(f"{self.plugin_name}: func_read_audio() failed")
        read = min(read, window.count)
        return buffer[: read * self._block_align].view(np.int16).reshape(read, channels)

    def shutdown(self) -> None:
        super().shutdown()
        self._table = None
        self._handle = None
