"""Error taxonomy for media sources.

Every failure raised while initializing a source derives from InitError,
so callers can treat construction as all-or-nothing. Read failures are
per-call and leave the source usable.
"""

from __future__ import annotations


class SourceError(Exception):
    """Base class for all media source errors."""

    pass


class InitError(SourceError):
    """Raised when a source cannot be initialized."""

    pass


class LibraryLoadFailure(InitError):
    """Raised when a native library cannot be opened."""

    def __init__(self, library_name: str):
        self.library_name = library_name
        super().__init__(f"Failed to load library: {library_name}")


class SymbolResolutionFailure(InitError):
    """Raised when a required entry point is missing from a library."""

    def __init__(self, symbol_name: str, library_name: str = ""):
        self.symbol_name = symbol_name
        self.library_name = library_name
        where = f" in {library_name}" if library_name else ""
        super().__init__(f"Required symbol not found{where}: {symbol_name}")


class ScriptInvocationFailure(InitError):
    """Raised when the script engine rejects the input or its environment."""

    pass


class UnsupportedFormat(InitError):
    """Raised when input is in a format that cannot be normalized."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class ContainerParseFailure(InitError):
    """Raised when a container file is malformed."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class FrameReadError(SourceError):
    """Raised when a single video frame cannot be read."""

    def __init__(self, index: int, message: str):
        self.index = index
        self.message = message
        super().__init__(f"Frame {index}: {message}")


class AudioReadError(SourceError):
    """Raised when an audio range cannot be read."""

    pass
