"""
mpm commands.

Each command module exposes `<name>_command(args) -> int`.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from musicplug.plugin.errors import PluginNotFoundError
from musicplug.plugin.manager import PluginManager
from musicplug.plugin.registry import Plugin
from musicplug.settings import get_settings


@asynccontextmanager
async def open_manager() -> AsyncIterator[PluginManager]:
    """A set-up manager built from settings, closed on exit."""
    manager = PluginManager.from_settings(get_settings())
    try:
        await manager.setup()
        yield manager
    finally:
        await manager.aclose()


def find_plugin(manager: PluginManager, target: str) -> Plugin:
    """
    Look a plugin up by name, full hash, or unambiguous hash prefix.

    Raises:
        PluginNotFoundError: If nothing (or more than one plugin) matches
    """
    plugin = manager.get_by_name(target) or manager.get_by_hash(target)
    if plugin is not None:
        return plugin

    matches = [p for p in manager.plugins if p.hash.startswith(target)]
    if len(matches) == 1:
        return matches[0]
    if matches:
        raise PluginNotFoundError(f"Hash prefix {target} is ambiguous")
    raise PluginNotFoundError(f"Plugin not found: {target}")


def describe(plugin: Plugin) -> str:
    version = f" ({plugin.version})" if plugin.version else ""
    return f"{plugin.name}{version}"
