"""Dynamic symbol loading for native backends.

Opens a shared library and binds a declared set of entry points. Loading
is all-or-nothing: if any required symbol is missing the library is closed
again and no table is returned, so callers never see a partially bound
table. Optional symbols resolve to None and are checked by the adapter.

Usage:
    specs = [
        SymbolSpec("avs_invoke", INVOKE_PROTO),
        SymbolSpec("avs_is_rgb48", IS_PROTO, required=False,
                   aliases=("_avs_is_rgb48@4",)),
    ]
    with load_symbols(CtypesOpener(), "libavisynth.so", specs) as table:
        table["avs_invoke"](...)
"""

from __future__ import annotations

import ctypes
import logging
import sys
from contextlib import ExitStack
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Protocol, Sequence

from mediasource.core.errors import LibraryLoadFailure, SymbolResolutionFailure

logger = logging.getLogger(__name__)

IS_WINDOWS = sys.platform == "win32"
IS_MACOS = sys.platform == "darwin"

# Calling convention of exported C entry points on this platform
NATIVE_FUNCTYPE = ctypes.WINFUNCTYPE if IS_WINDOWS else ctypes.CFUNCTYPE


class LibraryOpener(Protocol):
    """OS dynamic loader: open(name) -> handle | None, resolve, close."""

    def open(self, name: str) -> Any | None: ...

    def resolve(self, handle: Any, symbol: str) -> int | None: ...

    def close(self, handle: Any) -> None: ...


class CtypesOpener:
    """LibraryOpener backed by ctypes."""

    def open(self, name: str) -> Any | None:
        library_class = ctypes.WinDLL if IS_WINDOWS else ctypes.CDLL
        try:
            return library_class(name)
        except OSError as e:
            logger.debug(f"dlopen({name}) failed: {e}")
            return None

    def resolve(self, handle: Any, symbol: str) -> int | None:
        try:
            function = handle[symbol]
        except AttributeError:
            return None
        return ctypes.cast(function, ctypes.c_void_p).value

    def close(self, handle: Any) -> None:
        import _ctypes

        if IS_WINDOWS:
            _ctypes.FreeLibrary(handle._handle)
        else:
            _ctypes.dlclose(handle._handle)


def platform_library_name(stem: str) -> str:
    """Platform file name for a shared library.

    Examples:
        "avisynth" -> "avisynth.dll" (Windows)
        "avisynth" -> "libavisynth.dylib" (macOS)
        "avisynth" -> "libavisynth.so" (other)
    """
    if IS_WINDOWS:
        return f"{stem}.dll"
    if IS_MACOS:
        return f"lib{stem}.dylib"
    return f"lib{stem}.so"


@dataclass(frozen=True)
class SymbolSpec:
    """Declared entry point.

    Attributes:
        name: Primary export name.
        prototype: ctypes function type bound to the resolved address
            (None keeps the raw address).
        required: Whether a missing symbol rejects the whole load.
        aliases: Fallback export names, tried in order.
    """

    name: str
    prototype: Callable[[int], Any] | None = None
    required: bool = True
    aliases: tuple[str, ...] = ()

    @property
    def candidates(self) -> tuple[str, ...]:
        return (self.name, *self.aliases)


@dataclass
class SymbolEntry:
    """Result of resolving one SymbolSpec."""

    spec: SymbolSpec
    address: int | None = None
    resolved: Any = None
    resolved_name: str | None = None

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def required(self) -> bool:
        return self.spec.required

    @property
    def aliases(self) -> tuple[str, ...]:
        return self.spec.aliases


class SymbolTable:
    """Bound entry points of one open library.

    Owns the library handle; close() unloads it and is idempotent.
    """

    def __init__(
        self,
        opener: LibraryOpener,
        handle: Any,
        library_name: str,
        entries: Sequence[SymbolEntry],
    ):
        self._opener = opener
        self._handle = handle
        self.library_name = library_name
        self._entries = {entry.name: entry for entry in entries}

    def __enter__(self) -> "SymbolTable":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __getitem__(self, name: str) -> Any:
        return self._entries[name].resolved

    def __contains__(self, name: str) -> bool:
        return self.has(name)

    @property
    def entries(self) -> list[SymbolEntry]:
        return list(self._entries.values())

    @property
    def is_open(self) -> bool:
        return self._handle is not None

    def get(self, name: str) -> Any:
        """Bound symbol, or None if unresolved or undeclared."""
        entry = self._entries.get(name)
        return entry.resolved if entry else None

    def has(self, name: str) -> bool:
        """Whether a declared symbol was resolved."""
        return self.get(name) is not None

    def close(self) -> None:
        """Unload the library."""
        if self._handle is None:
            return
        handle, self._handle = self._handle, None
        for entry in self._entries.values():
            entry.resolved = None
        self._opener.close(handle)
        logger.debug(f"Unloaded {self.library_name}")


def _resolve(opener: LibraryOpener, handle: Any, spec: SymbolSpec) -> SymbolEntry:
    entry = SymbolEntry(spec=spec)
    for candidate in spec.candidates:
        address = opener.resolve(handle, candidate)
        if address:
            entry.address = address
            entry.resolved_name = candidate
            entry.resolved = spec.prototype(address) if spec.prototype else address
            break
    return entry


def load_symbols(
    opener: LibraryOpener,
    library_name: str,
    specs: Iterable[SymbolSpec],
) -> SymbolTable:
    """Open a library and bind its entry points.

    Args:
        opener: OS loader collaborator.
        library_name: Library file name or path.
        specs: Entry points, in resolution order.

    Returns:
        SymbolTable with every required symbol bound.

    Raises:
        LibraryLoadFailure: If the library cannot be opened.
        SymbolResolutionFailure: If a required symbol is missing. The
            library is closed before this propagates.
    """
    handle = opener.open(library_name)
    if handle is None:
        raise LibraryLoadFailure(library_name)

    with ExitStack() as stack:
        stack.callback(opener.close, handle)

        entries = []
        for spec in specs:
            entry = _resolve(opener, handle, spec)
            if entry.resolved is None:
                if spec.required:
                    raise SymbolResolutionFailure(spec.name, library_name)
                logger.debug(f"Optional symbol {spec.name} not found in {library_name}")
            entries.append(entry)

        stack.pop_all()

    logger.debug(f"Loaded {library_name} ({len(entries)} symbols declared)")
    return SymbolTable(opener, handle, library_name, entries)
