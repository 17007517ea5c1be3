"""Media sources behind one frame-indexed contract.

Backends:
- ScriptSource: AviSynth scripts, normalized to planar 4:2:0 / 16-bit audio
- PluginSource: legacy AviUtl input plugins
- WavSource: PCM WAV files
"""

from mediasource.sources.base import SourceBase, SourceKind
from mediasource.sources.plugin import PluginSource, split_plugin_path
from mediasource.sources.registry import SourceHandle, open_source, select_kind
from mediasource.sources.script import ScriptSource
from mediasource.sources.wav import WavSource

__all__ = [
    "PluginSource",
    "ScriptSource",
    "SourceBase",
    "SourceHandle",
    "SourceKind",
    "WavSource",
    "open_source",
    "select_kind",
    "split_plugin_path",
]
