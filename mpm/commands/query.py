"""
mpm query command (-Q).

List installed plugins in user order.
"""

import asyncio
from typing import Any

from mpm.commands import describe, open_manager
from musicplug.plugin.loader import PluginStateCode
from musicplug.plugin.registry import Plugin

_STATE_NOTES = {
    PluginStateCode.VERSION_NOT_MATCH: "not compatible with this app version",
    PluginStateCode.CANNOT_PARSE: "cannot be parsed",
}


def format_plugin(index: int, plugin: Plugin, verbose: bool = False) -> str:
    line = f"{index:>3}  {describe(plugin)}  [{plugin.state.value}]  {plugin.hash[:12]}"
    note = _STATE_NOTES.get(plugin.state_code)
    if note:
        line += f"  - {note}"
    if verbose:
        capabilities = ", ".join(sorted(plugin.instance.capabilities)) or "none"
        line += f"\n     capabilities: {capabilities}"
        if plugin.instance.src_url:
            line += f"\n     src_url: {plugin.instance.src_url}"
        if plugin.error:
            line += f"\n     error: {plugin.error}"
    return line


def query_command(args: Any) -> int:
    return asyncio.run(query_async(args))


async def query_async(args: Any) -> int:
    async with open_manager() as manager:
        plugins = manager.sorted_plugins()
        if not plugins:
            print("No plugins installed")
            return 0
        for index, plugin in enumerate(plugins):
            print(format_plugin(index, plugin, args.verbose))
    return 0
