#!/usr/bin/env python3
"""
Command-line entry point for the Govee touch panel.

    govee-touch run --config panel.yaml
    govee-touch devices --config panel.yaml
    govee-touch state --config panel.yaml
    govee-touch check-config --config panel.yaml
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from govee_touch.app import GoveeTouchApp, setup_logging
from govee_touch.config import AppConfig, load_config
from govee_touch.errors import ConfigError, DispatchError, GoveeTouchError
from govee_touch.govee_api import GoveeClient

logger = logging.getLogger("govee_touch.main")


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments.

    Only the most commonly adjusted settings are exposed here; everything
    else comes from the config file or the Pydantic defaults.
    """
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", "-c", type=str, help="Path to the YAML config file")
    common.add_argument(
        "--log-level",
        type=str,
        choices=["debug", "info", "warning", "error", "critical"],
        help="Logging level",
    )

    parser = argparse.ArgumentParser(
        description="Govee touch panel",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    commands = parser.add_subparsers(dest="command", required=True)

    run = commands.add_parser("run", parents=[common], help="Start the touch panel")
    run.add_argument("--dry-run", action="store_true", help="Log commands instead of sending them")
    run.add_argument("--no-web", action="store_true", help="Do not serve the status API")
    run.add_argument("--sample-interval", type=int, help="Milliseconds between sensor reads")
    run.add_argument("--debounce", type=int, help="Debounce window in milliseconds")

    commands.add_parser("devices", parents=[common], help="List devices on the Govee account")
    commands.add_parser("state", parents=[common], help="Show the configured device state")
    commands.add_parser("check-config", parents=[common], help="Validate the config file")

    return parser.parse_args(argv)


def config_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """Config values given on the command line, ignoring unset options."""
    overrides: Dict[str, Any] = {}

    if args.log_level is not None:
        overrides["log_level"] = args.log_level

    if getattr(args, "dry_run", False):
        overrides["dry_run"] = True

    if getattr(args, "no_web", False):
        overrides["web_enabled"] = False

    if getattr(args, "sample_interval", None) is not None:
        overrides["sample_interval_ms"] = args.sample_interval

    if getattr(args, "debounce", None) is not None:
        overrides["debounce_window_ms"] = args.debounce

    return overrides


async def _query_api(config: AppConfig, what: str) -> Dict[str, Any]:
    config.govee.check_complete(need_device=what == "state")
    async with GoveeClient(
        api_key=config.govee.api_key,
        device_sku=config.govee.device_sku,
        device_id=config.govee.device_id,
        api_url=config.govee.api_url,
        timeout_sec=config.io_timeout_sec,
    ) as client:
        if what == "devices":
            return await client.get_devices()
        return await client.get_device_state()


def _print_mapping(config: AppConfig) -> None:
    print(f"Allowed hours: {config.allowed_hours.start_hour:02d}:00-{config.allowed_hours.end_hour:02d}:00")
    print("Channel mappings:")
    for channel in sorted(config.channels):
        print(f"  Channel {channel}: {config.channels[channel].describe()}")
    for name, scenes in config.collections.items():
        print(f"Collection {name}: {', '.join(scenes)}")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the application."""
    args = parse_arguments(argv)

    try:
        config = load_config(args.config, config_overrides(args))
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    setup_logging(config.log_level, config.log_file)

    if args.command == "check-config":
        _print_mapping(config)
        return 0

    if args.command in ("devices", "state"):
        try:
            data = asyncio.run(_query_api(config, args.command))
        except (ConfigError, DispatchError) as e:
            logger.error(f"{args.command} request failed: {e}")
            return 1
        print(json.dumps(data, indent=2))
        return 0

    try:
        app = GoveeTouchApp(config)
        app.run()
    except ConfigError as e:
        logger.critical(f"Configuration error: {e}")
        return 2
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received, shutting down")
    except GoveeTouchError as e:
        logger.critical(f"Touch panel stopped: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
