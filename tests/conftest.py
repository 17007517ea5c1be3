"""Shared pytest fixtures for mediasource tests.

Native backends are replaced by in-process fakes:
- FakeOpener: LibraryOpener over dicts of symbol addresses
- FakeAvsApi: script engine API with clip reference counting
- FakePlugin: input plugin table built from ctypes callbacks
"""

import ctypes
import struct

import numpy as np
import pytest

from mediasource.adapter.native.avisynth import (
    AVS_CS_YUY2,
    AVS_CS_YV12,
    AVS_IT_FIELDBASED,
    AVS_IT_TFF,
    AVS_SAMPLE_INT8,
    AVS_SAMPLE_INT16,
    AvsFeatures,
    AVSValue,
    AVSVideoInfo,
)
from mediasource.adapter.native.aviutl import (
    INPUT_INFO_FLAG_AUDIO,
    INPUT_INFO_FLAG_VIDEO,
    INPUT_INFO_FLAG_VIDEO_RANDOM_ACCESS,
    BitmapInfoHeader,
    CloseFunc,
    ExitFunc,
    GetPluginTableFunc,
    InfoGetFunc,
    InitFunc,
    InputPluginTable,
    OpenFunc,
    ReadAudioFunc,
    ReadVideoFunc,
    WaveFormatEx,
)
from mediasource.core.config import SourceConfig


# ============================================================================
# Library opener
# ============================================================================


class FakeLibrary:
    """Handle returned by FakeOpener.open."""

    def __init__(self, name: str):
        self.name = name


class FakeOpener:
    """LibraryOpener serving symbol addresses from dicts."""

    def __init__(self, libraries: dict[str, dict[str, int]] | None = None):
        self.libraries = libraries or {}
        self.opened: list[FakeLibrary] = []
        self.closed: list[FakeLibrary] = []
        self.resolved: list[str] = []

    @property
    def open_handles(self) -> int:
        return len(self.opened) - len(self.closed)

    def open(self, name: str):
        if name not in self.libraries:
            return None
        handle = FakeLibrary(name)
        self.opened.append(handle)
        return handle

    def resolve(self, handle, symbol: str):
        self.resolved.append(symbol)
        return self.libraries[handle.name].get(symbol)

    def close(self, handle) -> None:
        assert handle in self.opened and handle not in self.closed
        self.closed.append(handle)


@pytest.fixture
def fake_opener():
    """Factory for FakeOpener instances."""
    return FakeOpener


@pytest.fixture
def source_config() -> SourceConfig:
    """Config independent of the environment."""
    return SourceConfig()


# ============================================================================
# Script engine
# ============================================================================


def make_video_info(**overrides) -> AVSVideoInfo:
    """Progressive planar 720x480 NTSC clip with 16-bit stereo audio."""
    fields = {
        "width": 720,
        "height": 480,
        "fps_numerator": 30000,
        "fps_denominator": 1001,
        "num_frames": 100,
        "pixel_type": AVS_CS_YV12,
        "audio_samples_per_second": 48000,
        "sample_type": AVS_SAMPLE_INT16,
        "num_audio_samples": 160160,
        "nchannels": 2,
        "image_type": 0,
    }
    fields.update(overrides)
    return AVSVideoInfo(**fields)


def luma_pattern(width: int, height: int, index: int) -> np.ndarray:
    """Deterministic luma values for a frame."""
    cols = np.arange(width)[None, :]
    rows = np.arange(height)[:, None]
    return ((cols + 3 * rows + index) % 251).astype(np.uint8)


def _clip_value(clip: int) -> AVSValue:
    value = AVSValue()
    value.type = ord("c")
    value.d.clip = clip
    return value


def _error_value(message: str) -> AVSValue:
    value = AVSValue()
    value.type = ord("e")
    value._keepalive = message.encode("utf-8")
    value.d.string = value._keepalive
    return value


class FakeAvsApi:
    """Script engine API double.

    Clips are integers with reference counts: a clip value holds one
    reference, take_clip adds one, release_value / release_clip drop one.
    Touching a clip with no references fails the test.
    """

    ENV = 0xE0

    def __init__(
        self,
        info: AVSVideoInfo | None = None,
        *,
        mt_mode: int | None = None,
        functions: tuple[str, ...] = ("ConvertToY420",),
        failing: tuple[str, ...] = (),
        import_error: str | None = None,
        import_result: str = "clip",
        environment_error: str | None = None,
        audio: bool = True,
        pitch_padding: int = 32,
    ):
        self.info = info or make_video_info()
        self.mt_mode = mt_mode
        self.functions = set(functions)
        if mt_mode is not None:
            self.functions.add("GetMTMode")
        self.failing = set(failing)
        self.import_error = import_error
        self.import_result = import_result
        self.env_error = environment_error
        self.pitch_padding = pitch_padding
        self.features = AvsFeatures(
            delete_environment=True,
            environment_errors=True,
            audio=audio,
            high_bit_depth=False,
        )

        self.calls: list[tuple] = []
        self.refs: dict[int, int] = {}
        self.infos: dict[int, AVSVideoInfo] = {}
        self.invoke_args: dict[str, AVSValue] = {}
        self.invoke_names: dict[str, list] = {}
        self.frames: dict[int, np.ndarray] = {}
        self.clip_errors: dict[int, str] = {}
        self.env_deleted = False
        self.closed = False
        self._next_id = 1

    # Helpers

    def _new_clip(self, info: AVSVideoInfo) -> AVSValue:
        clip = self._next_id
        self._next_id += 1
        self.infos[clip] = info
        self.refs[clip] = 1
        return _clip_value(clip)

    def _alive(self, clip: int) -> int:
        assert self.refs.get(clip, 0) > 0, f"clip {clip} used after release"
        return clip

    def _input_clip(self, args: AVSValue) -> int:
        first = args.items()[0]
        assert first.is_clip()
        return self._alive(first.d.clip)

    @property
    def leaked_clips(self) -> dict[int, int]:
        return {clip: count for clip, count in self.refs.items() if count}

    def ops(self, *names: str) -> list[tuple]:
        return [call for call in self.calls if call[0] in names]

    # Environment

    def close(self) -> None:
        self.calls.append(("close",))
        self.closed = True

    def create_environment(self, version):
        self.calls.append(("create_environment", version))
        return self.ENV

    def environment_error(self, env):
        return self.env_error

    def delete_environment(self, env) -> None:
        self.calls.append(("delete_environment", env))
        self.env_deleted = True

    def function_exists(self, env, name: str) -> bool:
        return name in self.functions

    def invoke(self, env, name, args, arg_names=None) -> AVSValue:
        assert env == self.ENV
        self.calls.append(("invoke", name))
        self.invoke_args[name] = args
        self.invoke_names[name] = list(arg_names) if arg_names else []

        if name in self.failing:
            return _error_value(f"{name} is broken")
        if name == "Import":
            if self.import_error:
                return _error_value(self.import_error)
            if self.import_result != "clip":
                return AVSValue.integer(1)
            return self._new_clip(AVSVideoInfo.from_buffer_copy(self.info))
        if name == "GetMTMode":
            return AVSValue.integer(self.mt_mode or 0)

        source = self.infos[self._input_clip(args)]
        info = AVSVideoInfo.from_buffer_copy(source)
        if name == "Weave":
            info.image_type &= ~AVS_IT_FIELDBASED
            info.height *= 2
            info.num_frames //= 2
        elif name in ("ConvertToY420", "ConvertToYV12"):
            info.pixel_type = AVS_CS_YV12
        elif name == "ConvertAudioTo16bit":
            info.sample_type = AVS_SAMPLE_INT16
        elif name != "Distributor":
            return _error_value(f"unknown function {name}")
        return self._new_clip(info)

    # Clips and values

    def take_clip(self, value: AVSValue, env) -> int:
        clip = self._alive(value.d.clip)
        self.refs[clip] += 1
        self.calls.append(("take_clip", clip))
        return clip

    def release_clip(self, clip) -> None:
        if clip:
            self._alive(clip)
            self.refs[clip] -= 1
            self.calls.append(("release_clip", clip))

    def release_value(self, value: AVSValue) -> None:
        if value.is_clip():
            clip = self._alive(value.d.clip)
            self.refs[clip] -= 1
            self.calls.append(("release_value", clip))
        else:
            self.calls.append(("release_value", None))

    def video_info(self, clip) -> AVSVideoInfo:
        return AVSVideoInfo.from_buffer_copy(self.infos[self._alive(clip)])

    def clip_error(self, clip):
        return self.clip_errors.pop(clip, None)

    # Frames and audio

    def get_frame(self, clip, index: int):
        info = self.infos[self._alive(clip)]
        pitch = info.width + self.pitch_padding
        plane = np.full((info.height, pitch), 0xFF, dtype=np.uint8)
        plane[:, : info.width] = luma_pattern(info.width, info.height, index)
        frame = 0x1000 + index
        self.frames[frame] = plane
        self.calls.append(("get_frame", index))
        return frame

    def release_frame(self, frame) -> None:
        self.frames.pop(frame)
        self.calls.append(("release_frame", frame))

    def plane_pitch(self, frame, plane=1) -> int:
        return self.frames[frame].shape[1]

    def plane_pointer(self, frame, plane=1) -> int:
        return self.frames[frame].ctypes.data

    def get_audio(self, clip, buffer: np.ndarray, start: int, count: int) -> None:
        self._alive(clip)
        samples = (np.arange(start, start + count) % 30000).astype(np.int16)
        buffer[:, :] = samples[:, None]
        self.calls.append(("get_audio", start, count))


@pytest.fixture
def avs_api():
    """Factory for FakeAvsApi instances."""
    return FakeAvsApi


@pytest.fixture
def video_info():
    """Factory for AVSVideoInfo records."""
    return make_video_info


@pytest.fixture
def field_based_info() -> AVSVideoInfo:
    """Separated fields, packed YUY2, 8-bit audio."""
    return make_video_info(
        height=240,
        num_frames=200,
        pixel_type=AVS_CS_YUY2,
        image_type=AVS_IT_FIELDBASED | AVS_IT_TFF,
        sample_type=AVS_SAMPLE_INT8,
    )


@pytest.fixture
def frame_luma():
    """Expected luma values generator."""
    return luma_pattern


# ============================================================================
# Input plugin
# ============================================================================


class FakePlugin:
    """Input plugin table backed by Python callbacks.

    Video frames are packed YUY2 with luma from luma_pattern and chroma
    0x80. Audio samples count up from the requested start.
    """

    HANDLE = 0x5150

    def __init__(
        self,
        *,
        width: int = 100,
        height: int = 40,
        frames: int = 10,
        rate: int = 30000,
        scale: int = 1001,
        sample_rate: int = 48000,
        channels: int = 2,
        bits_per_sample: int = 16,
        block_align: int | None = None,
        audio_samples: int = 16016,
        with_audio: bool = True,
        with_init: bool = True,
        init_ok: bool = True,
        open_ok: bool = True,
        failing_frames: tuple[int, ...] = (),
    ):
        self.width, self.height, self.frames = width, height, frames
        self.rate, self.scale = rate, scale
        self.audio_samples = audio_samples
        self.with_audio = with_audio
        self.init_ok, self.open_ok = init_ok, open_ok
        self.failing_frames = set(failing_frames)
        self.calls: list[tuple] = []
        self.opened_paths: list[bytes] = []

        self.bitmap = BitmapInfoHeader(biWidth=width, biHeight=height, biBitCount=16)
        if block_align is None:
            block_align = channels * bits_per_sample // 8
        self.wave = WaveFormatEx(
            wFormatTag=1,
            nChannels=channels,
            nSamplesPerSec=sample_rate,
            nAvgBytesPerSec=sample_rate * block_align,
            nBlockAlign=block_align,
            wBitsPerSample=bits_per_sample,
        )

        self._callbacks = {
            "func_exit": ExitFunc(self._exit),
            "func_open": OpenFunc(self._open),
            "func_close": CloseFunc(self._close),
            "func_info_get": InfoGetFunc(self._info_get),
            "func_read_video": ReadVideoFunc(self._read_video),
            "func_read_audio": ReadAudioFunc(self._read_audio),
        }
        if with_init:
            self._callbacks["func_init"] = InitFunc(self._init)
        self.table = InputPluginTable(**self._callbacks)
        self.entry = GetPluginTableFunc(lambda: ctypes.addressof(self.table))

    @property
    def entry_address(self) -> int:
        return ctypes.cast(self.entry, ctypes.c_void_p).value

    def packed_frame(self, index: int) -> np.ndarray:
        packed = np.full((self.height, 2 * self.width), 0x80, dtype=np.uint8)
        packed[:, 0::2] = luma_pattern(self.width, self.height, index)
        return packed

    def _init(self):
        self.calls.append(("init",))
        return 1 if self.init_ok else 0

    def _exit(self):
        self.calls.append(("exit",))
        return 1

    def _open(self, path):
        self.calls.append(("open",))
        self.opened_paths.append(path)
        return self.HANDLE if self.open_ok else None

    def _close(self, handle):
        self.calls.append(("close", handle))
        return 1

    def _info_get(self, handle, info_ptr):
        info = info_ptr.contents
        info.flag = INPUT_INFO_FLAG_VIDEO | INPUT_INFO_FLAG_VIDEO_RANDOM_ACCESS
        info.rate, info.scale, info.n = self.rate, self.scale, self.frames
        info.format = ctypes.pointer(self.bitmap)
        info.format_size = ctypes.sizeof(self.bitmap)
        if self.with_audio:
            info.flag |= INPUT_INFO_FLAG_AUDIO
            info.audio_n = self.audio_samples
            info.audio_format = ctypes.pointer(self.wave)
            info.audio_format_size = ctypes.sizeof(self.wave)
        return 1

    def _read_video(self, handle, frame, buf):
        self.calls.append(("read_video", frame))
        if frame in self.failing_frames:
            return 0
        packed = self.packed_frame(frame)
        ctypes.memmove(buf, packed.ctypes.data, packed.nbytes)
        return 1

    def _read_audio(self, handle, start, length, buf):
        self.calls.append(("read_audio", start, length))
        count = max(0, min(length, self.audio_samples - start))
        samples = np.repeat(
            np.arange(start, start + count, dtype=np.int16)[:, None],
            self.wave.nChannels,
            axis=1,
        )
        ctypes.memmove(buf, samples.ctypes.data, samples.nbytes)
        return count


@pytest.fixture
def fake_plugin():
    """Factory for FakePlugin instances."""
    return FakePlugin


# ============================================================================
# WAV files
# ============================================================================


def pcm_format(channels: int = 2, rate: int = 44100, bits: int = 16, tag: int = 1) -> bytes:
    block_align = channels * bits // 8
    return struct.pack("<HHIIHH", tag, channels, rate, rate * block_align, block_align, bits)


def riff_wave(chunks: list[tuple[bytes, bytes]]) -> bytes:
    body = b"WAVE" + b"".join(
        tag + struct.pack("<I", len(payload)) + payload for tag, payload in chunks
    )
    return b"RIFF" + struct.pack("<I", len(body)) + body


@pytest.fixture
def wav_format():
    """Builder for `fmt ` chunk payloads."""
    return pcm_format


@pytest.fixture
def wav_bytes():
    """Builder for RIFF/WAVE byte streams."""
    return riff_wave


@pytest.fixture
def stereo_wav(tmp_path):
    """16-bit stereo 44.1kHz WAV with 1000 counting samples."""
    samples = np.repeat(np.arange(1000, dtype="<i2")[:, None], 2, axis=1)
    data = riff_wave(
        [
            (b"LIST", b"INFOISFT\x04\x00\x00\x00test"),
            (b"fmt ", pcm_format()),
            (b"data", samples.tobytes()),
        ]
    )
    path = tmp_path / "stereo.wav"
    path.write_bytes(data)
    return path
