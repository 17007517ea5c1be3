"""ctypes layout of the legacy AviUtl input plugin ABI.

A plugin exports a single entry point returning a pointer to
InputPluginTable. Stream info is reported through InputInfo, whose video
and audio formats point at Windows BITMAPINFOHEADER / WAVEFORMATEX
records owned by the plugin.
"""

from __future__ import annotations

import ctypes

from mediasource.adapter.native.loader import NATIVE_FUNCTYPE, SymbolSpec

INPUT_INFO_FLAG_VIDEO = 1
INPUT_INFO_FLAG_AUDIO = 2
INPUT_INFO_FLAG_VIDEO_RANDOM_ACCESS = 8

WAVE_FORMAT_PCM = 0x0001


class BitmapInfoHeader(ctypes.Structure):
    _fields_ = [
        ("biSize", ctypes.c_uint32),
        ("biWidth", ctypes.c_int32),
        ("biHeight", ctypes.c_int32),
        ("biPlanes", ctypes.c_uint16),
        ("biBitCount", ctypes.c_uint16),
        ("biCompression", ctypes.c_uint32),
        ("biSizeImage", ctypes.c_uint32),
        ("biXPelsPerMeter", ctypes.c_int32),
        ("biYPelsPerMeter", ctypes.c_int32),
        ("biClrUsed", ctypes.c_uint32),
        ("biClrImportant", ctypes.c_uint32),
    ]


class WaveFormatEx(ctypes.Structure):
    _pack_ = 1
    _fields_ = [
        ("wFormatTag", ctypes.c_uint16),
        ("nChannels", ctypes.c_uint16),
        ("nSamplesPerSec", ctypes.c_uint32),
        ("nAvgBytesPerSec", ctypes.c_uint32),
        ("nBlockAlign", ctypes.c_uint16),
        ("wBitsPerSample", ctypes.c_uint16),
        ("cbSize", ctypes.c_uint16),
    ]


class InputInfo(ctypes.Structure):
    _fields_ = [
        ("flag", ctypes.c_int),
        ("rate", ctypes.c_int),
        ("scale", ctypes.c_int),
        ("n", ctypes.c_int),
        ("format", ctypes.POINTER(BitmapInfoHeader)),
        ("format_size", ctypes.c_int),
        ("audio_n", ctypes.c_int),
        ("audio_format", ctypes.POINTER(WaveFormatEx)),
        ("audio_format_size", ctypes.c_int),
        ("handler", ctypes.c_uint32),
        ("reserve", ctypes.c_int * 7),
    ]


# Table callbacks use the C calling convention on every platform
InitFunc = ctypes.CFUNCTYPE(ctypes.c_int)
ExitFunc = ctypes.CFUNCTYPE(ctypes.c_int)
OpenFunc = ctypes.CFUNCTYPE(ctypes.c_void_p, ctypes.c_char_p)
CloseFunc = ctypes.CFUNCTYPE(ctypes.c_int, ctypes.c_void_p)
InfoGetFunc = ctypes.CFUNCTYPE(ctypes.c_int, ctypes.c_void_p, ctypes.POINTER(InputInfo))
ReadVideoFunc = ctypes.CFUNCTYPE(
    ctypes.c_int, ctypes.c_void_p, ctypes.c_int, ctypes.c_void_p
)
ReadAudioFunc = ctypes.CFUNCTYPE(
    ctypes.c_int, ctypes.c_void_p, ctypes.c_int, ctypes.c_int, ctypes.c_void_p
)
IsKeyframeFunc = ctypes.CFUNCTYPE(ctypes.c_int, ctypes.c_void_p, ctypes.c_int)
ConfigFunc = ctypes.CFUNCTYPE(ctypes.c_int, ctypes.c_void_p, ctypes.c_void_p)


class InputPluginTable(ctypes.Structure):
    _fields_ = [
        ("flag", ctypes.c_int),
        ("name", ctypes.c_char_p),
        ("filefilter", ctypes.c_char_p),
        ("information", ctypes.c_char_p),
        ("func_init", InitFunc),
        ("func_exit", ExitFunc),
        ("func_open", OpenFunc),
        ("func_close", CloseFunc),
        ("func_info_get", InfoGetFunc),
        ("func_read_video", ReadVideoFunc),
        ("func_read_audio", ReadAudioFunc),
        ("func_is_keyframe", IsKeyframeFunc),
        ("func_config", ConfigFunc),
        ("reserve", ctypes.c_int * 16),
    ]


# Entry point returns InputPluginTable*; callbacks cannot return pointer
# types, so the address comes back as void*.
GetPluginTableFunc = NATIVE_FUNCTYPE(ctypes.c_void_p)

PLUGIN_ENTRY_POINT = "GetInputPluginTable"

PLUGIN_SYMBOLS: tuple[SymbolSpec, ...] = (
    SymbolSpec(
        PLUGIN_ENTRY_POINT,
        GetPluginTableFunc,
        aliases=("_GetInputPluginTable@0",),
    ),
)


def plugin_table_at(address: int) -> InputPluginTable:
    """View the plugin table at an address returned by the entry point."""
    return ctypes.cast(address, ctypes.POINTER(InputPluginTable)).contents
