"""Native library adapters.

- loader: all-or-nothing dynamic symbol loading
- avisynth: script engine C API
- aviutl: legacy input plugin table
"""

from mediasource.adapter.native.loader import (
    CtypesOpener,
    LibraryOpener,
    SymbolEntry,
    SymbolSpec,
    SymbolTable,
    load_symbols,
    platform_library_name,
)

__all__ = [
    "CtypesOpener",
    "LibraryOpener",
    "SymbolEntry",
    "SymbolSpec",
    "SymbolTable",
    "load_symbols",
    "platform_library_name",
]
