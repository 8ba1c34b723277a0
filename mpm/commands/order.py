"""
mpm order command (-O).

Persist a new plugin order; every installed plugin must be listed once.
"""

import asyncio
import sys
from typing import Any

from mpm.commands import find_plugin, open_manager
from mpm.commands.query import format_plugin


def order_command(args: Any) -> int:
    if not args.targets:
        print("Error: No targets specified", file=sys.stderr)
        print("Usage: mpm -O <name|hash>...", file=sys.stderr)
        return 1

    return asyncio.run(order_async(args))


async def order_async(args: Any) -> int:
    async with open_manager() as manager:
        plugins = [find_plugin(manager, target) for target in args.targets]
        for index, plugin in enumerate(await manager.reorder(plugins)):
            print(format_plugin(index, plugin))
    return 0
