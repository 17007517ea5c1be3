"""Adapter module for native libraries and container files.

Adapters wrap IO and ABI boundaries behind small Python interfaces.
Sources should use adapters rather than calling ctypes directly.

Structure:
- adapter/native/  - dynamic symbol loading, script engine and plugin ABIs
- adapter/media/   - WAV parsing, luma plane extraction
"""

# Re-export commonly used items for convenience
from mediasource.adapter.media import WaveFormat, WavLayout, parse_wav
from mediasource.adapter.native import (
    CtypesOpener,
    LibraryOpener,
    SymbolSpec,
    SymbolTable,
    load_symbols,
)

__all__ = [
    # Media
    "WaveFormat",
    "WavLayout",
    "parse_wav",
    # Native
    "CtypesOpener",
    "LibraryOpener",
    "SymbolSpec",
    "SymbolTable",
    "load_symbols",
]
