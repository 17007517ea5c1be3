"""Tests for luma plane extraction."""

import numpy as np
import pytest

from mediasource.adapter.media.planes import copy_plane, luma_from_packed, luma_from_planar


def _strided(width, height, pitch):
    plane = np.full((height, pitch), 0xEE, dtype=np.uint8)
    plane[:, :width] = np.arange(width * height, dtype=np.uint8).reshape(height, width)
    return plane


class TestCopyPlane:
    """Tests for copy_plane."""

    def test_drops_row_padding(self):
        plane = _strided(10, 4, 16)
        result = copy_plane(plane.ctypes.data, 16, 10, 4)
        assert result.shape == (4, 10)
        np.testing.assert_array_equal(result, plane[:, :10])
        assert result.flags["C_CONTIGUOUS"]

    def test_does_not_read_past_last_row(self):
        """The last row is copied without its padding."""
        plane = _strided(8, 3, 12)
        tight = np.ascontiguousarray(plane.reshape(-1)[: 12 * 2 + 8])
        result = copy_plane(tight.ctypes.data, 12, 8, 3)
        np.testing.assert_array_equal(result, plane[:, :8])

    def test_empty(self):
        assert copy_plane(0, 0, 0, 0).shape == (0, 0)

    def test_pitch_smaller_than_width(self):
        plane = _strided(8, 2, 8)
        with pytest.raises(ValueError):
            copy_plane(plane.ctypes.data, 4, 8, 2)


class TestLumaFromPlanar:
    """Tests for luma_from_planar."""

    def test_truncates_to_multiple_of_16(self):
        plane = _strided(37, 21, 64)
        result = luma_from_planar(plane.ctypes.data, 64, 37, 21)
        assert result.shape == (16, 32)
        np.testing.assert_array_equal(result, plane[:16, :32])

    def test_small_frame_is_empty(self):
        plane = _strided(15, 15, 16)
        assert luma_from_planar(plane.ctypes.data, 16, 15, 15).shape == (0, 0)


class TestLumaFromPacked:
    """Tests for luma_from_packed."""

    def test_takes_even_bytes(self):
        width, height = 20, 18
        luma = np.arange(width * height, dtype=np.uint8).reshape(height, width)
        packed = np.full((height, 2 * width), 0x80, dtype=np.uint8)
        packed[:, 0::2] = luma

        result = luma_from_packed(packed.reshape(-1), width, height)

        assert result.shape == (16, 16)
        np.testing.assert_array_equal(result, luma[:16, :16])
        assert result.flags["C_CONTIGUOUS"]

    def test_ignores_trailing_bytes(self):
        packed = np.zeros(2 * 16 * 16 + 100, dtype=np.uint8)
        assert luma_from_packed(packed, 16, 16).shape == (16, 16)
