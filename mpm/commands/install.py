"""
mpm install command (-S).

Install plugins from local files, URLs or subscription manifests.
"""

import asyncio
import sys
from typing import Any

from mpm.commands import describe, open_manager
from musicplug.plugin.errors import AggregateInstallError, PluginError
from musicplug.plugin.fetcher import is_remote, strip_fragment
from musicplug.plugin.manager import (
    MANIFEST_SUFFIX,
    BatchInstallResult,
    InstallResult,
    PluginManager,
)


def install_command(args: Any) -> int:
    """
    Execute install command.

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    if not args.targets and not args.refresh:
        print("Error: No targets specified", file=sys.stderr)
        print("Usage: mpm -S <path|url>... | mpm -Sy", file=sys.stderr)
        return 1

    return asyncio.run(install_async(args))


def _report(result: InstallResult) -> None:
    print(f"{result.action.value}: {describe(result.plugin)}")


def _report_batch(batch: BatchInstallResult) -> None:
    for result in batch.results:
        _report(result)


async def install_target(manager: PluginManager, target: str) -> None:
    """Install one target, choosing the pipeline from its shape."""
    if strip_fragment(target).endswith(MANIFEST_SUFFIX):
        _report_batch(await manager.install_from_subscription(target))
    elif is_remote(target):
        _report(await manager.install_plugin_from_url(target))
    else:
        _report(await manager.install_plugin(target))


async def install_async(args: Any) -> int:
    """Async install implementation."""
    success_count = 0
    fail_count = 0

    async with open_manager() as manager:
        if args.refresh:
            try:
                _report_batch(await manager.sync_subscriptions())
                success_count += 1
            except AggregateInstallError as e:
                for result in e.results:
                    _report(result)
                print(f"Some plugins failed to install:\n{e}", file=sys.stderr)
                fail_count += 1

        for target in args.targets:
            try:
                await install_target(manager, target)
                success_count += 1
            except AggregateInstallError as e:
                for result in e.results:
                    _report(result)
                print(f"Some plugins from {target} failed to install:\n{e}", file=sys.stderr)
                fail_count += 1
            except PluginError as e:
                print(f"Failed to install {target}: {e}", file=sys.stderr)
                fail_count += 1

    if args.verbose:
        print(f"\nSucceeded: {success_count}, Failed: {fail_count}")

    return 0 if fail_count == 0 else 1
