"""
musicplug - Plugin manager core for a music player.

Third-party music sources are installed at runtime as sandboxed Python
plugins; this package loads, versions, orders and dispatches to them.
"""

__version__ = "0.1.0"

from musicplug.media import MusicItem, MusicQueue, play_from_list
from musicplug.plugin.errors import AggregateInstallError, PluginError
from musicplug.plugin.manager import PluginManager
from musicplug.plugin.registry import Plugin, PluginState

__all__ = [
    "__version__",
    "AggregateInstallError",
    "MusicItem",
    "MusicQueue",
    "Plugin",
    "PluginError",
    "PluginManager",
    "PluginState",
    "play_from_list",
]
