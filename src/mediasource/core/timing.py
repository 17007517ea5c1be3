"""Frame-to-sample timing.

Maps a video frame index to the half-open range of audio samples that
plays during that frame. Arithmetic is exact integer math on the rational
frame rate, so consecutive frames tile the sample axis with no gaps:

    start(f) = floor(f * sr * den / num)
    end(f)   = floor((f + 1) * sr * den / num) == start(f + 1)
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class AudioRange:
    """Half-open sample range [start, end)."""

    start: int
    end: int

    def __post_init__(self) -> None:
        if self.start < 0 or self.end < self.start:
            raise ValueError(f"Invalid audio range: [{self.start}, {self.end})")

    @property
    def count(self) -> int:
        """Number of samples in the range."""
        return self.end - self.start

    def clamp(self, total: int) -> "AudioRange":
        """Clamp the range against a known total sample count.

        Args:
            total: Total samples available, or -1 if unbounded.

        Returns:
            Range truncated to the stream; empty if it starts past the end.
        """
        if total < 0:
            return self
        start = min(self.start, total)
        return AudioRange(start=start, end=max(start, min(self.end, total)))


def sample_index(frame: int, rate_num: int, rate_den: int, sample_rate: int) -> int:
    """First audio sample of a frame.

    Args:
        frame: Video frame index (>= 0).
        rate_num: Frame rate numerator (> 0).
        rate_den: Frame rate denominator (> 0).
        sample_rate: Audio samples per second.

    Returns:
        floor(frame * sample_rate * rate_den / rate_num)
    """
    if rate_num <= 0 or rate_den <= 0:
        raise ValueError(f"Invalid frame rate: {rate_num}/{rate_den}")
    if frame < 0:
        raise ValueError(f"Frame index must be non-negative: {frame}")
    if sample_rate < 0:
        raise ValueError(f"Sample rate must be non-negative: {sample_rate}")
    return frame * sample_rate * rate_den // rate_num


def frame_to_sample_range(
    frame: int,
    rate_num: int,
    rate_den: int,
    sample_rate: int,
) -> AudioRange:
    """Audio samples covered by a video frame.

    Args:
        frame: Video frame index (>= 0).
        rate_num: Frame rate numerator (> 0).
        rate_den: Frame rate denominator (> 0).
        sample_rate: Audio samples per second.

    Returns:
        AudioRange for the frame. Not clamped to the stream length.

    Raises:
        ValueError: If the rate or the index is out of domain.

    Examples:
        >>> frame_to_sample_range(10, 30000, 1001, 48000)
        AudioRange(start=16016, end=17617)
    """
    return AudioRange(
        start=sample_index(frame, rate_num, rate_den, sample_rate),
        end=sample_index(frame + 1, rate_num, rate_den, sample_rate),
    )
