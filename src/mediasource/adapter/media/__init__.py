"""Media adapters for container and pixel data.

- wav: RIFF/WAVE chunk scanning
- planes: canonical luma plane extraction
"""

from mediasource.adapter.media.planes import copy_plane, luma_from_packed, luma_from_planar
from mediasource.adapter.media.wav import (
    ChunkRecord,
    WaveFormat,
    WavLayout,
    iter_chunks,
    parse_wav,
)

__all__ = [
    "ChunkRecord",
    "WaveFormat",
    "WavLayout",
    "copy_plane",
    "iter_chunks",
    "luma_from_packed",
    "luma_from_planar",
    "parse_wav",
]
