"""Pydantic models for media sources.

MediaDescriptor is frozen: it is built once when a source initializes,
and set_rate replaces it with a re-validated copy.
"""

from __future__ import annotations

from fractions import Fraction

from pydantic import BaseModel, Field

# Canonical planes are truncated to a multiple of this in each dimension
PLANE_ALIGNMENT = 16


def align_down(value: int, alignment: int = PLANE_ALIGNMENT) -> int:
    """Truncate value to a multiple of alignment."""
    return value - value % alignment


class MediaDescriptor(BaseModel):
    """Stream description reported by a source."""

    model_config = {"frozen": True}

    has_video: bool = False
    has_audio: bool = False
    random_access: bool = False

    frame_rate_num: int = Field(default=0, ge=0, lt=2**32)
    frame_rate_den: int = Field(default=1, gt=0, lt=2**32)
    frame_count: int = Field(default=0, ge=0)
    width: int = Field(default=0, ge=0)
    height: int = Field(default=0, ge=0)
    interlaced: bool = False
    top_field_first: bool = False

    audio_sample_rate: int = Field(default=0, ge=0, lt=2**32)
    audio_channel_count: int = Field(default=0, ge=0, lt=2**16)
    # -1 means unknown / unbounded
    audio_sample_count: int = Field(default=0, ge=-1)

    @property
    def frame_rate(self) -> Fraction | None:
        """Frame rate as an exact fraction, None if unset."""
        if self.frame_rate_num == 0:
            return None
        return Fraction(self.frame_rate_num, self.frame_rate_den)

    @property
    def plane_width(self) -> int:
        """Width of canonical luma planes."""
        return align_down(self.width)

    @property
    def plane_height(self) -> int:
        """Height of canonical luma planes."""
        return align_down(self.height)

    def with_rate(self, num: int, den: int) -> "MediaDescriptor":
        """Copy of this descriptor with a new frame rate.

        Frame and sample counts are kept as-is.
        """
        return MediaDescriptor.model_validate(
            {**self.model_dump(), "frame_rate_num": num, "frame_rate_den": den}
        )
