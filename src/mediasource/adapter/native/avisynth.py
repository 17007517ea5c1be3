"""ctypes binding for the AviSynth C API.

Mirrors the engine's value and video-info records and wraps the loaded
symbol table in AvsApi. The engine environment is passed explicitly to
every call that needs it; nothing here holds process-wide state.
"""

from __future__ import annotations

import ctypes
import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from mediasource.adapter.native.loader import (
    NATIVE_FUNCTYPE,
    CtypesOpener,
    LibraryOpener,
    SymbolSpec,
    SymbolTable,
    load_symbols,
    platform_library_name,
)
from mediasource.core.errors import ScriptInvocationFailure

logger = logging.getLogger(__name__)

# 2.5 is the first interface version with planar YV12
AVS_INTERFACE_25 = 2

# Colorspace bits (pixel_type)
AVS_CS_BGR = 1 << 28
AVS_CS_YUV = 1 << 29
AVS_CS_INTERLEAVED = 1 << 30
AVS_CS_PLANAR = 1 << 31
AVS_CS_BGR24 = 1 << 0 | AVS_CS_BGR | AVS_CS_INTERLEAVED
AVS_CS_BGR32 = 1 << 1 | AVS_CS_BGR | AVS_CS_INTERLEAVED
AVS_CS_YUY2 = 1 << 2 | AVS_CS_YUV | AVS_CS_INTERLEAVED
AVS_CS_YV12 = 1 << 3 | AVS_CS_YUV | AVS_CS_PLANAR

# Field structure bits (image_type)
AVS_IT_BFF = 1 << 0
AVS_IT_TFF = 1 << 1
AVS_IT_FIELDBASED = 1 << 2

# Audio sample types
AVS_SAMPLE_INT8 = 1 << 0
AVS_SAMPLE_INT16 = 1 << 1
AVS_SAMPLE_INT24 = 1 << 2
AVS_SAMPLE_INT32 = 1 << 3
AVS_SAMPLE_FLOAT = 1 << 4

_SAMPLE_BYTES = {
    AVS_SAMPLE_INT8: 1,
    AVS_SAMPLE_INT16: 2,
    AVS_SAMPLE_INT24: 3,
    AVS_SAMPLE_INT32: 4,
    AVS_SAMPLE_FLOAT: 4,
}

AVS_PLANAR_Y = 1 << 0


class AVSValue(ctypes.Structure):
    """Tagged engine value (AVS_Value)."""

    def is_clip(self) -> bool:
        return self.type == ord("c")

    def is_bool(self) -> bool:
        return self.type == ord("b")

    def is_int(self) -> bool:
        return self.type == ord("i")

    def is_string(self) -> bool:
        return self.type == ord("s")

    def is_array(self) -> bool:
        return self.type == ord("a")

    def is_error(self) -> bool:
        return self.type == ord("e")

    def is_void(self) -> bool:
        return self.type == ord("v")

    def as_int(self) -> int:
        return self.d.integer

    def as_bool(self) -> bool:
        return self.d.boolean != b"\x00"

    def as_string(self) -> str | None:
        """String payload of a string or error value."""
        raw = self.d.string
        return raw.decode("utf-8", errors="replace") if raw is not None else None

    def items(self) -> list["AVSValue"]:
        """Elements of an array value."""
        if not self.is_array():
            return [self]
        return [self.d.array[i] for i in range(self.array_size)]

    @classmethod
    def void(cls) -> "AVSValue":
        value = cls()
        value.type = ord("v")
        return value

    @classmethod
    def string(cls, text: str) -> "AVSValue":
        value = cls()
        value.type = ord("s")
        value._keepalive = text.encode("utf-8")
        value.d.string = value._keepalive
        return value

    @classmethod
    def boolean(cls, flag: bool) -> "AVSValue":
        value = cls()
        value.type = ord("b")
        value.d.boolean = b"\x01" if flag else b"\x00"
        return value

    @classmethod
    def integer(cls, number: int) -> "AVSValue":
        value = cls()
        value.type = ord("i")
        value.d.integer = number
        return value

    @classmethod
    def array(cls, elements: Sequence["AVSValue"]) -> "AVSValue":
        value = cls()
        value.type = ord("a")
        value.array_size = len(elements)
        storage = (cls * len(elements))(*elements)
        value._keepalive = (storage, list(elements))
        value.d.array = ctypes.cast(storage, ctypes.POINTER(cls))
        return value


class _AVSValueData(ctypes.Union):
    _fields_ = [
        ("clip", ctypes.c_void_p),
        ("boolean", ctypes.c_char),
        ("integer", ctypes.c_int),
        ("floating_pt", ctypes.c_float),
        ("string", ctypes.c_char_p),
        ("array", ctypes.POINTER(AVSValue)),
        ("longlong", ctypes.c_int64),
        ("double_pt", ctypes.c_double),
    ]


AVSValue._fields_ = [
    ("type", ctypes.c_short),
    ("array_size", ctypes.c_short),
    ("d", _AVSValueData),
]


class AVSVideoInfo(ctypes.Structure):
    """Clip properties (AVS_VideoInfo)."""

    _fields_ = [
        ("width", ctypes.c_int),
        ("height", ctypes.c_int),
        ("fps_numerator", ctypes.c_uint),
        ("fps_denominator", ctypes.c_uint),
        ("num_frames", ctypes.c_int),
        ("pixel_type", ctypes.c_uint),
        ("audio_samples_per_second", ctypes.c_int),
        ("sample_type", ctypes.c_int),
        ("num_audio_samples", ctypes.c_int64),
        ("nchannels", ctypes.c_int),
        ("image_type", ctypes.c_int),
    ]

    @property
    def has_video(self) -> bool:
        return self.width != 0

    @property
    def has_audio(self) -> bool:
        return self.num_audio_samples > 0

    @property
    def is_field_based(self) -> bool:
        return bool(self.image_type & AVS_IT_FIELDBASED)

    @property
    def is_tff(self) -> bool:
        return bool(self.image_type & AVS_IT_TFF)

    @property
    def is_planar(self) -> bool:
        return bool(self.pixel_type & AVS_CS_PLANAR)

    @property
    def bytes_per_channel_sample(self) -> int:
        return _SAMPLE_BYTES.get(self.sample_type, 0)


_ENV = ctypes.c_void_p
_CLIP = ctypes.c_void_p
_FRAME = ctypes.c_void_p
_VI_PTR = ctypes.POINTER(AVSVideoInfo)

_IS_PROTO = NATIVE_FUNCTYPE(ctypes.c_int, _VI_PTR)


def _required(name: str, *signature) -> SymbolSpec:
    return SymbolSpec(name, NATIVE_FUNCTYPE(*signature))


def _optional(name: str, *signature, aliases: tuple[str, ...] = ()) -> SymbolSpec:
    return SymbolSpec(name, NATIVE_FUNCTYPE(*signature), required=False, aliases=aliases)


AVS_SYMBOLS: tuple[SymbolSpec, ...] = (
    _required("avs_clip_get_error", ctypes.c_char_p, _CLIP),
    _required("avs_create_script_environment", _ENV, ctypes.c_int),
    _optional("avs_delete_script_environment", None, _ENV),
    _optional("avs_get_error", ctypes.c_char_p, _ENV),
    _required("avs_get_frame", _FRAME, _CLIP, ctypes.c_int),
    _required("avs_get_video_info", _VI_PTR, _CLIP),
    _required("avs_function_exists", ctypes.c_int, _ENV, ctypes.c_char_p),
    _required(
        "avs_invoke",
        AVSValue,
        _ENV,
        ctypes.c_char_p,
        AVSValue,
        ctypes.POINTER(ctypes.c_char_p),
    ),
    _required("avs_release_clip", None, _CLIP),
    _required("avs_release_value", None, AVSValue),
    _required("avs_release_video_frame", None, _FRAME),
    _required("avs_take_clip", _CLIP, AVSValue, _ENV),
    _optional("avs_is_yv24", ctypes.c_int, _VI_PTR),
    _optional("avs_is_yv16", ctypes.c_int, _VI_PTR),
    _optional("avs_is_yv12", ctypes.c_int, _VI_PTR),
    _optional("avs_is_yv411", ctypes.c_int, _VI_PTR),
    _optional("avs_is_y8", ctypes.c_int, _VI_PTR),
    _required("avs_get_pitch_p", ctypes.c_int, _FRAME, ctypes.c_int),
    _required("avs_get_read_ptr_p", ctypes.c_void_p, _FRAME, ctypes.c_int),
    _required(
        "avs_bit_blt",
        None,
        _ENV,
        ctypes.c_void_p,
        ctypes.c_int,
        ctypes.c_void_p,
        ctypes.c_int,
        ctypes.c_int,
        ctypes.c_int,
    ),
    _optional(
        "avs_get_audio",
        ctypes.c_int,
        _CLIP,
        ctypes.c_void_p,
        ctypes.c_int64,
        ctypes.c_int64,
    ),
    # AviSynth+ extensions
    _optional("avs_is_rgb48", ctypes.c_int, _VI_PTR, aliases=("_avs_is_rgb48@4",)),
    _optional("avs_is_rgb64", ctypes.c_int, _VI_PTR, aliases=("_avs_is_rgb64@4",)),
    _optional("avs_is_yuv444p16", ctypes.c_int, _VI_PTR),
    _optional("avs_is_yuv422p16", ctypes.c_int, _VI_PTR),
    _optional("avs_is_yuv420p16", ctypes.c_int, _VI_PTR),
    _optional("avs_is_y16", ctypes.c_int, _VI_PTR),
    _optional("avs_is_444", ctypes.c_int, _VI_PTR),
    _optional("avs_is_422", ctypes.c_int, _VI_PTR),
    _optional("avs_is_420", ctypes.c_int, _VI_PTR),
    _optional("avs_is_y", ctypes.c_int, _VI_PTR),
)

_HIGH_BIT_DEPTH_SYMBOLS = (
    "avs_is_yuv444p16",
    "avs_is_yuv422p16",
    "avs_is_yuv420p16",
    "avs_is_y16",
)


@dataclass(frozen=True)
class AvsFeatures:
    """Optional engine capabilities, detected once after loading."""

    delete_environment: bool
    environment_errors: bool
    audio: bool
    high_bit_depth: bool

    @classmethod
    def detect(cls, table: SymbolTable) -> "AvsFeatures":
        return cls(
            delete_environment=table.has("avs_delete_script_environment"),
            environment_errors=table.has("avs_get_error"),
            audio=table.has("avs_get_audio"),
            high_bit_depth=all(table.has(name) for name in _HIGH_BIT_DEPTH_SYMBOLS),
        )


def _decode(raw: bytes | None) -> str | None:
    return raw.decode("utf-8", errors="replace") if raw else None


class AvsApi:
    """Script engine calls over a loaded symbol table.

    Usage:
        api = AvsApi.load(CtypesOpener())
        env = api.create_environment()
        result = api.invoke(env, "Import", AVSValue.string(path))
        ...
        api.close()
    """

    def __init__(self, table: SymbolTable):
        self._table = table
        self.features = AvsFeatures.detect(table)

    @classmethod
    def load(
        cls,
        opener: LibraryOpener | None = None,
        library_name: str | None = None,
    ) -> "AvsApi":
        """Load the engine library.

        Args:
            opener: OS loader collaborator (ctypes by default).
            library_name: Library name or path. Defaults to the platform
                name of "avisynth".

        Raises:
            LibraryLoadFailure: If the library cannot be opened.
            SymbolResolutionFailure: If a required entry point is missing.
        """
        name = library_name or platform_library_name("avisynth")
        table = load_symbols(opener or CtypesOpener(), name, AVS_SYMBOLS)
        api = cls(table)
        logger.debug(f"AviSynth loaded from {name}: {api.features}")
        return api

    @property
    def library_name(self) -> str:
        return self._table.library_name

    def close(self) -> None:
        """Unload the engine library."""
        self._table.close()

    # Environment

    def create_environment(self, version: int = AVS_INTERFACE_25) -> int | None:
        return self._table["avs_create_script_environment"](version)

    def environment_error(self, env: int | None) -> str | None:
        if not self.features.environment_errors:
            return None
        return _decode(self._table["avs_get_error"](env))

    def delete_environment(self, env: int | None) -> None:
        if self.features.delete_environment and env:
            self._table["avs_delete_script_environment"](env)

    def function_exists(self, env: int | None, name: str) -> bool:
        return bool(self._table["avs_function_exists"](env, name.encode("utf-8")))

    def invoke(
        self,
        env: int | None,
        name: str,
        args: AVSValue,
        arg_names: Sequence[str | None] | None = None,
    ) -> AVSValue:
        """Call a script function.

        Args:
            env: Script environment.
            name: Function name.
            args: Single argument or array of arguments.
            arg_names: Per-argument names (None for positional).
        """
        names = None
        if arg_names is not None:
            encoded = [n.encode("utf-8") if n is not None else None for n in arg_names]
            names = (ctypes.c_char_p * len(encoded))(*encoded)
        return self._table["avs_invoke"](env, name.encode("utf-8"), args, names)

    # Clips and values

    def take_clip(self, value: AVSValue, env: int | None) -> int | None:
        return self._table["avs_take_clip"](value, env)

    def release_clip(self, clip: int | None) -> None:
        if clip:
            self._table["avs_release_clip"](clip)

    def release_value(self, value: AVSValue) -> None:
        self._table["avs_release_value"](value)

    def video_info(self, clip: int | None) -> AVSVideoInfo:
        """Snapshot of the clip's video info."""
        pointer = self._table["avs_get_video_info"](clip)
        if not pointer:
            raise ScriptInvocationFailure("clip has no video info")
        return AVSVideoInfo.from_buffer_copy(pointer.contents)

    def clip_error(self, clip: int | None) -> str | None:
        return _decode(self._table["avs_clip_get_error"](clip))

    # Frames

    def get_frame(self, clip: int | None, index: int) -> int | None:
        return self._table["avs_get_frame"](clip, index)

    def release_frame(self, frame: int | None) -> None:
        if frame:
            self._table["avs_release_video_frame"](frame)

    def plane_pitch(self, frame: int | None, plane: int = AVS_PLANAR_Y) -> int:
        return self._table["avs_get_pitch_p"](frame, plane)

    def plane_pointer(self, frame: int | None, plane: int = AVS_PLANAR_Y) -> int | None:
        return self._table["avs_get_read_ptr_p"](frame, plane)

    # Audio

    def get_audio(self, clip: int | None, buffer: np.ndarray, start: int, count: int) -> None:
        """Fill buffer with count samples starting at start."""
        self._table["avs_get_audio"](
            clip, buffer.ctypes.data_as(ctypes.c_void_p), start, count
        )
