"""
mpm CLI - music plugin manager.

Pacman-style interface for managing music source plugins.

Usage:
    mpm -S <path|url>...        Install plugin(s); .json targets are subscriptions
    mpm -Sy                     Sync configured subscriptions
    mpm -R <name|hash>...       Remove plugin(s)
    mpm -R --all                Remove every plugin
    mpm -U [name...]            Update plugin(s) from their src_url
    mpm -Q                      List installed plugins in order
    mpm -O <name|hash>...       Set the plugin order
"""

import argparse
import sys
from pathlib import Path

from musicplug import config, settings
from musicplug.log import options_from_settings, setup_logging
from musicplug.plugin.errors import PluginError


class MPMError(Exception):
    """Base exception for mpm usage errors."""

    pass


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser with pacman-style flags."""
    parser = argparse.ArgumentParser(
        prog="mpm",
        description="mpm - music source plugin manager",
        add_help=False,
    )

    ops = parser.add_mutually_exclusive_group()
    ops.add_argument("-S", "--sync", action="store_true", help="Install plugin(s)")
    ops.add_argument("-R", "--remove", action="store_true", help="Remove plugin(s)")
    ops.add_argument("-U", "--upgrade", action="store_true", help="Update plugin(s)")
    ops.add_argument("-Q", "--query", action="store_true", help="List installed")
    ops.add_argument("-O", "--order", action="store_true", help="Reorder plugins")
    ops.add_argument("-h", "--help", action="store_true", help="Show help")

    parser.add_argument(
        "-y", "--refresh", action="store_true", help="Sync subscriptions (-Sy)"
    )
    parser.add_argument("--all", action="store_true", help="Remove every plugin (-R)")
    parser.add_argument("--config", type=Path, help="Config file path")
    parser.add_argument(
        "--init-config", action="store_true", help="Write a default config file"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    parser.add_argument("targets", nargs="*", help="Plugin paths, URLs, names or hashes")

    return parser


def print_help():
    help_text = """
mpm - music source plugin manager

Usage:
    mpm -S <path|url>...        Install plugin(s); .json targets are subscriptions
    mpm -Sy                     Sync configured subscriptions
    mpm -R <name|hash>...       Remove plugin(s)
    mpm -R --all                Remove every plugin
    mpm -U [name...]            Update plugin(s) from their src_url
    mpm -Q                      List installed plugins in order
    mpm -O <name|hash>...       Set the plugin order

Options:
    --config PATH               Config file (default: config/musicplug.toml)
    --init-config               Write a commented default config file
    -v, --verbose               Verbose output
    -h, --help                  Show this help
"""
    print(help_text.strip())


def _prepare(args: argparse.Namespace) -> None:
    if args.config is not None:
        config.set_config_file(args.config)
    cfg = settings.get_settings()
    setup_logging(Path(cfg.log_dir), options_from_settings(cfg), verbose=args.verbose)


def main(argv: list[str] | None = None) -> int:
    """Main entry point for mpm CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    try:
        if args.init_config:
            if args.config is not None:
                config.set_config_file(args.config)
            settings.ensure_declared()
            path = config.write_default_config(settings.SECTION)
            print(f"Wrote {path}")
            return 0

        if args.help or not (
            args.sync or args.remove or args.upgrade or args.query or args.order
        ):
            print_help()
            return 0

        _prepare(args)

        if args.sync:
            from mpm.commands.install import install_command

            return install_command(args)

        elif args.remove:
            from mpm.commands.remove import remove_command

            return remove_command(args)

        elif args.upgrade:
            from mpm.commands.upgrade import upgrade_command

            return upgrade_command(args)

        elif args.query:
            from mpm.commands.query import query_command

            return query_command(args)

        elif args.order:
            from mpm.commands.order import order_command

            return order_command(args)

    except (MPMError, PluginError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130
    except Exception as e:
        print(f"Unexpected error: {e}", file=sys.stderr)
        if args.verbose:
            import traceback

            traceback.print_exc()
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
