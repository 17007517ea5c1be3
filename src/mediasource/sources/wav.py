"""WAV file source (audio only)."""

from __future__ import annotations

import logging
from contextlib import ExitStack
from typing import BinaryIO

import numpy as np

from mediasource.adapter.media.wav import WavLayout, parse_wav
from mediasource.core.config import SourceConfig
from mediasource.core.errors import (
    AudioReadError,
    FrameReadError,
    InitError,
    UnsupportedFormat,
)
from mediasource.models.types import MediaDescriptor
from mediasource.sources.base import SourceBase, SourceKind

logger = logging.getLogger(__name__)

# Little-endian PCM sample types by bit depth
PCM_DTYPES = {
    8: np.dtype(np.uint8),
    16: np.dtype("<i2"),
    32: np.dtype("<i4"),
}


class WavSource(SourceBase):
    """Source reading PCM samples straight from a WAV file.

    The sample count is reported as -1: the declared data size is not
    trusted, reads simply come back short at end of file.
    """

    kind = SourceKind.CONTAINER

    def __init__(self, config: SourceConfig | None = None):
        super().__init__(config)
        self._file: BinaryIO | None = None
        self.layout: WavLayout | None = None
        self._dtype = PCM_DTYPES[16]

    def _open(self, path: str, stack: ExitStack) -> MediaDescriptor:
        logger.info(f"Opening WAV file {path}")
        try:
            stream = stack.enter_context(open(path, "rb"))
        except OSError as e:
            raise InitError(f"WAV open failed: {path}") from e

        layout = parse_wav(stream, self.config.wav_scan_limit)
        wave_format = layout.format
        dtype = PCM_DTYPES.get(wave_format.bits_per_sample)
        if dtype is None:
            raise UnsupportedFormat(f"{wave_format.bits_per_sample}-bit PCM")
        block_align = wave_format.block_align
        if (
            wave_format.channels == 0
            or block_align % dtype.itemsize
            or block_align < dtype.itemsize * wave_format.channels
        ):
            raise UnsupportedFormat("inconsistent PCM block alignment")

        self._file, self.layout, self._dtype = stream, layout, dtype
        return MediaDescriptor(
            has_audio=True,
            audio_sample_rate=wave_format.sample_rate,
            audio_channel_count=wave_format.channels,
            audio_sample_count=-1,
        )

    def read_video_frame(self, index: int) -> np.ndarray:
        raise FrameReadError(index, "WAV source has no video")

    def read_audio_range(self, start: int, count: int) -> np.ndarray:
        if self._file is None or self._file.closed:
            raise AudioReadError("source is not open")
        if start < 0 or count < 0:
            raise AudioReadError(f"invalid audio range: start={start} count={count}")

        wave_format = self.layout.format
        block_align = wave_format.block_align
        try:
            self._file.seek(self.layout.data_offset + start * block_align)
            data = self._file.read(count * block_align)
        except OSError as e:
            raise AudioReadError(f"WAV read failed: {e}") from e

        frames = len(data) // block_align
        columns = block_align // self._dtype.itemsize
        samples = np.frombuffer(data[: frames * block_align], dtype=self._dtype)
        return samples.reshape(frames, columns)[:, : wave_format.channels]

    def shutdown(self) -> None:
        super().shutdown()
        self._file = None
