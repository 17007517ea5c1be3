"""Luma plane extraction into the canonical shape.

Canonical planes are 8-bit luma, uint8, with both dimensions truncated to
a multiple of 16.
"""

from __future__ import annotations

import ctypes

import numpy as np

from mediasource.models.types import align_down


def copy_plane(address: int, pitch: int, width: int, height: int) -> np.ndarray:
    """Copy a strided 8-bit plane from native memory.

    Args:
        address: Address of the first row.
        pitch: Bytes between row starts (>= width).
        width: Bytes per row to keep.
        height: Rows to copy.

    Returns:
        Contiguous (height, width) uint8 array.
    """
    if height == 0 or width == 0:
        return np.zeros((height, width), dtype=np.uint8)
    if pitch < width:
        raise ValueError(f"Pitch {pitch} is smaller than row width {width}")
    raw = ctypes.string_at(address, pitch * (height - 1) + width)
    rows = np.frombuffer(raw + bytes(pitch - width), dtype=np.uint8)
    return rows.reshape(height, pitch)[:, :width].copy()


def luma_from_planar(
    address: int, pitch: int, width: int, height: int
) -> np.ndarray:
    """Canonical luma plane from a planar frame's Y plane."""
    return copy_plane(address, pitch, align_down(width), align_down(height))


def luma_from_packed(buffer: np.ndarray, width: int, height: int) -> np.ndarray:
    """Canonical luma plane from packed 4:2:2 (YUY2) pixels.

    Luma sits at every even byte. Rows are 2 * width bytes; columns past
    the truncated width and rows past the truncated height are dropped.

    Args:
        buffer: Packed frame bytes, at least 2 * width * height long.
        width: Frame width in pixels.
        height: Frame height in pixels.
    """
    packed = np.asarray(buffer, dtype=np.uint8).reshape(-1)[: 2 * width * height]
    rows = packed.reshape(height, 2 * width)
    plane_width = align_down(width)
    plane_height = align_down(height)
    return np.ascontiguousarray(rows[:plane_height, 0 : 2 * plane_width : 2])
