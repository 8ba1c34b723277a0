"""
mpm remove command (-R).

Uninstall plugins by name or hash, or all of them with --all.
"""

import asyncio
import sys
from typing import Any

from mpm.commands import describe, find_plugin, open_manager
from musicplug.plugin.errors import PluginError


def remove_command(args: Any) -> int:
    if not args.targets and not args.all:
        print("Error: No targets specified", file=sys.stderr)
        print("Usage: mpm -R <name|hash>... | mpm -R --all", file=sys.stderr)
        return 1

    return asyncio.run(remove_async(args))


async def remove_async(args: Any) -> int:
    fail_count = 0

    async with open_manager() as manager:
        if args.all:
            await manager.uninstall_all_plugins()
            print("removed: all plugins")
            return 0

        for target in args.targets:
            try:
                plugin = find_plugin(manager, target)
                await manager.uninstall_plugin(plugin.hash)
                print(f"removed: {describe(plugin)}")
            except PluginError as e:
                print(f"Failed to remove {target}: {e}", file=sys.stderr)
                fail_count += 1

    return 0 if fail_count == 0 else 1
