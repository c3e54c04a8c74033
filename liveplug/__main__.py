"""
Command line entry point.

Usage:
    python -m liveplug list
    python -m liveplug run my-plugin other-plugin
    python -m liveplug run --all
    python -m liveplug watch
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import Any, Dict, List, Optional

from .domain.models import TriggerEvent, TriggerSource
from .framework.configuration import ConfigurationBuilder, LivePluginConfiguration
from .framework.host import LivePluginHost
from .infrastructure.exceptions import LivePluginException
from .infrastructure.observability.logging import configure_default_logging

logger = logging.getLogger("liveplug.cli")


def build_configuration(args: argparse.Namespace) -> LivePluginConfiguration:
    """Configuration file, then environment, then command line overrides."""
    builder = ConfigurationBuilder()
    if args.config:
        builder.add_yaml_source(args.config, 100)
    builder.add_environment_source("LIVEPLUG_", 200)

    overrides: Dict[str, Any] = {}
    if args.plugins_path:
        overrides["plugins_path"] = args.plugins_path
    if args.log_level:
        overrides["logging_config"] = {"level": args.log_level}
    if getattr(args, "poll_interval", None):
        overrides["hot_reload"] = {"poll_interval": args.poll_interval}
    if overrides:
        builder.add_dict_source({"runner": overrides}, 300)
    return builder.build()


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="liveplug",
        description="Discover, run and hot-reload liveplug plugins",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s list                             # Show discovered plugins
  %(prog)s run hello-world                  # Run one plugin
  %(prog)s run --all                        # Run every plugin
  %(prog)s watch --plugins-path ./plugins   # Run all, re-run on file changes
        """,
    )
    parser.add_argument("--config", help="Path to a YAML configuration file")
    parser.add_argument("--plugins-path", help="Folder containing plugin folders")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Override the configured log level"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("list", help="List discovered plugins and their language")

    run_parser = subparsers.add_parser("run", help="Run plugins once, then unload them")
    run_parser.add_argument("plugin_ids", nargs="*", help="Ids of the plugins to run")
    run_parser.add_argument("--all", action="store_true", help="Run every discovered plugin")

    watch_parser = subparsers.add_parser("watch", help="Run all plugins and re-run them when their files change")
    watch_parser.add_argument("--poll-interval", type=float, help="Seconds between file checks")

    return parser


def command_list(host: LivePluginHost) -> int:
    plugins = host.list_plugins()
    if not plugins:
        print(f"No plugins found in {host.store.plugins_path}")
        return 0
    for plugin_id, language in plugins.items():
        kind = language.entry_file if language else "no entry point"
        print(f"{plugin_id:30} {kind}")
    return 0


async def command_run(host: LivePluginHost, plugin_ids: List[str]) -> int:
    # The command names the plugins to run, so the startup run is skipped
    await host.start(run_all_on_startup=False)
    report = await asyncio.to_thread(host.request_run, plugin_ids, TriggerEvent(TriggerSource.CLI))
    shutdown_report = await host.stop()

    failed = False
    for batch_report in (report, shutdown_report):
        if not batch_report.is_empty:
            print(batch_report.render(), file=sys.stderr)
            failed = True
    return 1 if failed else 0


async def command_watch(host: LivePluginHost) -> int:
    host.config.hot_reload.enabled = True
    await host.start(run_all_on_startup=False)
    await asyncio.to_thread(host.request_run, "all", TriggerEvent(TriggerSource.CLI))

    stop_event = asyncio.Event()

    def signal_handler():
        logger.info("Received shutdown signal")
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            asyncio.get_running_loop().add_signal_handler(sig, signal_handler)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            signal.signal(sig, lambda *_: signal_handler())

    logger.info("Watching plugins - press Ctrl+C to stop")
    await stop_event.wait()
    await host.stop()
    return 0


async def main(argv: Optional[List[str]] = None) -> int:
    parser = create_parser()
    args = parser.parse_args(argv)

    try:
        configuration = build_configuration(args)
        host = LivePluginHost(configuration)
    except LivePluginException as e:
        print(f"Configuration error: {e.message}", file=sys.stderr)
        return 2

    if args.command == "list":
        configure_default_logging(host.config.logging_config)
        return command_list(host)

    if args.command == "run":
        if args.all:
            plugin_ids = list(host.store.list_plugins())
        elif args.plugin_ids:
            plugin_ids = args.plugin_ids
        else:
            parser.error("give plugin ids or --all")
        return await command_run(host, plugin_ids)

    return await command_watch(host)


def run() -> None:
    """Console script entry point."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
