"""
mpm upgrade command (-U).

Update the named plugins, or every plugin that declares a src_url.
"""

import asyncio
import sys
from typing import Any

from mpm.commands import describe, find_plugin, open_manager
from musicplug.plugin.errors import AggregateInstallError, PluginError


def upgrade_command(args: Any) -> int:
    return asyncio.run(upgrade_async(args))


async def upgrade_async(args: Any) -> int:
    fail_count = 0

    async with open_manager() as manager:
        if not args.targets:
            try:
                batch = await manager.update_all_plugins()
                results = list(batch.results)
            except AggregateInstallError as e:
                results = e.results
                print(f"Some plugins failed to update:\n{e}", file=sys.stderr)
                fail_count += 1
            for result in results:
                print(f"{result.action.value}: {describe(result.plugin)}")
            return 0 if fail_count == 0 else 1

        for target in args.targets:
            try:
                plugin = find_plugin(manager, target)
                result = await manager.update_plugin(plugin)
                print(f"{result.action.value}: {describe(result.plugin)}")
            except PluginError as e:
                print(f"Failed to update {target}: {e}", file=sys.stderr)
                fail_count += 1

    return 0 if fail_count == 0 else 1
