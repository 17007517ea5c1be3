"""RIFF/WAVE container parsing.

Scans a binary stream for the `fmt ` and `data` chunks and reports the
PCM format and the byte offset where sample data starts. The scan stops
at the first `data` chunk and gives up after a bounded number of bytes.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from typing import BinaryIO

from mediasource.core.config import DEFAULT_WAV_SCAN_LIMIT
from mediasource.core.errors import ContainerParseFailure, UnsupportedFormat

logger = logging.getLogger(__name__)

WAVE_FORMAT_PCM = 0x0001

# WAVEFORMATEX: PCM record plus cbSize
FORMAT_STRUCT_SIZE = 18
_PCM_RECORD = struct.Struct("<HHIIHH")
_CHUNK_HEADER = struct.Struct("<4sI")
_SIZE_FIELD_BYTES = 4


@dataclass(frozen=True)
class WaveFormat:
    """PCM format record from the `fmt ` chunk."""

    format_tag: int
    channels: int
    sample_rate: int
    avg_bytes_per_sec: int
    block_align: int
    bits_per_sample: int
    extra_size: int = 0

    @classmethod
    def from_bytes(cls, payload: bytes) -> "WaveFormat":
        """Decode a format record of 16 to 18 bytes."""
        if len(payload) < _PCM_RECORD.size:
            raise ContainerParseFailure("illegal WAVE file: short fmt chunk")
        fields = _PCM_RECORD.unpack_from(payload)
        extra = 0
        if len(payload) >= FORMAT_STRUCT_SIZE:
            (extra,) = struct.unpack_from("<H", payload, _PCM_RECORD.size)
        return cls(*fields, extra_size=extra)


@dataclass(frozen=True)
class ChunkRecord:
    """Chunk header seen during a scan."""

    tag: bytes
    size: int
    payload_offset: int


@dataclass(frozen=True)
class WavLayout:
    """Result of parsing a WAV stream.

    Attributes:
        format: PCM format record.
        data_offset: Stream offset of the first sample byte.
        data_size: Declared size of the `data` chunk (may be bogus for
            streamed files).
    """

    format: WaveFormat
    data_offset: int
    data_size: int


def _read_exact(stream: BinaryIO, size: int) -> bytes | None:
    data = stream.read(size)
    return data if len(data) == size else None


def iter_chunks(stream: BinaryIO, scan_limit: int = DEFAULT_WAV_SCAN_LIMIT):
    """Yield chunk headers until the stream ends or the scan limit passes.

    A chunk is only reported if its tag ends within the first scan_limit
    bytes. The caller consumes or skips each payload before advancing.
    """
    while True:
        header = _read_exact(stream, _CHUNK_HEADER.size)
        if header is None:
            return
        if stream.tell() - _SIZE_FIELD_BYTES > scan_limit:
            return
        tag, size = _CHUNK_HEADER.unpack(header)
        yield ChunkRecord(tag=tag, size=size, payload_offset=stream.tell())


def parse_wav(stream: BinaryIO, scan_limit: int = DEFAULT_WAV_SCAN_LIMIT) -> WavLayout:
    """Locate the PCM sample data in a RIFF/WAVE stream.

    Args:
        stream: Seekable binary stream positioned at the RIFF header.
        scan_limit: Give up if no `data` tag ends within this many bytes.

    Returns:
        WavLayout with the format record and sample data offset. The stream
        is left positioned at the first sample byte.

    Raises:
        ContainerParseFailure: If the stream is not RIFF/WAVE, a chunk is
            truncated, or no `data` chunk is found within the limit.
        UnsupportedFormat: If the format is not PCM.
    """
    if _read_exact(stream, 4) != b"RIFF":
        raise ContainerParseFailure("not RIFF/WAVE")
    stream.seek(4, 1)  # total size
    if _read_exact(stream, 4) != b"WAVE":
        raise ContainerParseFailure("not RIFF/WAVE")

    wave_format: WaveFormat | None = None

    for chunk in iter_chunks(stream, scan_limit):
        if chunk.tag == b"fmt ":
            payload = _read_exact(stream, min(chunk.size, FORMAT_STRUCT_SIZE))
            if payload is None:
                raise ContainerParseFailure("illegal WAVE file: truncated fmt chunk")
            wave_format = WaveFormat.from_bytes(payload)
            if wave_format.format_tag != WAVE_FORMAT_PCM:
                raise UnsupportedFormat("non-PCM")
            if chunk.size > FORMAT_STRUCT_SIZE:
                stream.seek(chunk.size - FORMAT_STRUCT_SIZE, 1)
        elif chunk.tag == b"data":
            if wave_format is None:
                raise ContainerParseFailure("data chunk before fmt chunk")
            logger.debug(
                f"WAV data at offset {chunk.payload_offset} "
                f"({chunk.size} bytes, {wave_format.channels}ch "
                f"{wave_format.sample_rate}Hz {wave_format.bits_per_sample}bit)"
            )
            return WavLayout(
                format=wave_format,
                data_offset=chunk.payload_offset,
                data_size=chunk.size,
            )
        else:
            logger.debug(f"Skipping chunk {chunk.tag!r} ({chunk.size} bytes)")
            stream.seek(chunk.size, 1)

    raise ContainerParseFailure("data chunk not found")
