"""
Command-line interface for the PulseChain price collector.
"""

import argparse
import asyncio
import inspect
import json
import os
import sys
from datetime import datetime, timezone
from typing import List, Optional

import aiohttp

from pulsechain_price_collector.clients.factory import create_pulsechain_client
from pulsechain_price_collector.collectors.onchain_price import OnChainPriceCollector
from pulsechain_price_collector.config.manager import ConfigManager
from pulsechain_price_collector.config.models import TIME_RANGES, CollectorConfig
from pulsechain_price_collector.models.core import PricePoint
from pulsechain_price_collector.utils.error_handling import PulseChainCollectorError
from pulsechain_price_collector.utils.series_export import export_series, series_to_dataframe
from pulsechain_price_collector.utils.structured_logging import logging_manager

NO_DATA_MESSAGE = "No historical data available"


def _load_config(config_path: str) -> CollectorConfig:
    """Load the config file if it exists, otherwise use defaults."""
    if not os.path.exists(config_path):
        return CollectorConfig()
    return ConfigManager(config_path).load_config()


def _setup_logging(args, config: CollectorConfig) -> None:
    logging_manager.setup_logging(
        log_level=args.log_level or config.logging.level,
        log_file=config.logging.file,
        structured_format=config.logging.structured,
    )


def _create_client(args, config: CollectorConfig):
    return create_pulsechain_client(
        config.api,
        config.error_handling,
        use_mock=args.mock,
        fixtures_path=args.fixtures,
    )


def _format_timestamp(timestamp_ms: int) -> str:
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def _print_table(points: List[PricePoint]) -> None:
    print(f"{'Time (UTC)':<20}  {'Price':>24}")
    for point in points:
        print(f"{_format_timestamp(point.timestamp):<20}  {point.value:>24.12g}")


async def history_command(args) -> int:
    """Reconstruct and print the price history of a pair."""
    config = _load_config(args.config)
    _setup_logging(args, config)
    time_range = args.range or config.reconstruction.default_time_range

    async with _create_client(args, config) as client:
        collector = OnChainPriceCollector(client, config.reconstruction)
        result = await collector.reconstruct(args.pair, time_range)

    points = result.points

    if args.output:
        fmt = args.format if args.format in ("csv", "json") else os.path.splitext(args.output)[1].lstrip(".") or "csv"
        path = export_series(points, args.output, fmt)
        print(f"Wrote {len(points)} price points to {path}")
    elif args.format == "json":
        payload = {"points": [point.to_dict() for point in points]}
        if args.report:
            payload["report"] = result.summary()
        print(json.dumps(payload, indent=2))
        return 0
    elif args.format == "csv":
        sys.stdout.write(series_to_dataframe(points).to_csv(index=False))
    elif not points:
        print(NO_DATA_MESSAGE)
    else:
        _print_table(points)

    if args.report:
        # keep a CSV stream on stdout parseable
        stream = sys.stderr if args.format == "csv" else sys.stdout
        print(json.dumps(result.summary(), indent=2), file=stream)

    return 0


async def spot_command(args) -> int:
    """Print the current price of a pair from its reserves."""
    config = _load_config(args.config)
    _setup_logging(args, config)

    async with _create_client(args, config) as client:
        collector = OnChainPriceCollector(client, config.reconstruction)
        point = await collector.get_spot_price(args.pair)

    print(f"{_format_timestamp(point.timestamp)}  {point.value:.12g}")
    return 0


def init_config_command(args) -> int:
    """Write a default configuration file."""
    if os.path.exists(args.config) and not args.force:
        print(f"Configuration file already exists: {args.config} (use --force to overwrite)")
        return 1

    if os.path.exists(args.config):
        os.remove(args.config)

    ConfigManager(args.config).load_config()
    print(f"Created configuration file: {args.config}")
    return 0


def validate_config_command(args) -> int:
    """Validate a configuration file."""
    is_valid, errors = ConfigManager(args.config).validate_config_file()
    if is_valid:
        print(f"Configuration is valid: {args.config}")
        return 0

    print(f"Configuration is invalid: {args.config}")
    for error in errors:
        print(f"  - {error}")
    return 1


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        '--config', '-c',
        default='config.yaml',
        help='Configuration file path'
    )
    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        help='Override the configured log level'
    )
    parser.add_argument(
        '--mock',
        action='store_true',
        help='Read chain data from CSV fixtures instead of the network'
    )
    parser.add_argument(
        '--fixtures',
        default='fixtures',
        help='Directory with logs.csv, blocks.csv and eth_calls.csv for --mock'
    )


def _add_history_command(subparsers) -> None:
    history_parser = subparsers.add_parser(
        'history',
        help='Reconstruct price history of a pair from Sync events'
    )
    history_parser.add_argument('pair', help='Pair contract address')
    history_parser.add_argument(
        '--range', '-r',
        type=str.upper,
        choices=TIME_RANGES,
        help='Time range (defaults to the configured default_time_range)'
    )
    history_parser.add_argument(
        '--format', '-f',
        choices=['table', 'json', 'csv'],
        default='table',
        help='Output format'
    )
    history_parser.add_argument('--output', '-o', help='Write the series to a CSV or JSON file')
    history_parser.add_argument(
        '--report',
        action='store_true',
        help='Include reconstruction diagnostics'
    )
    _add_common_arguments(history_parser)
    history_parser.set_defaults(func=history_command)


def _add_spot_command(subparsers) -> None:
    spot_parser = subparsers.add_parser('spot', help='Current price of a pair from its reserves')
    spot_parser.add_argument('pair', help='Pair contract address')
    _add_common_arguments(spot_parser)
    spot_parser.set_defaults(func=spot_command)


def _add_config_commands(subparsers) -> None:
    init_parser = subparsers.add_parser('init-config', help='Write a default configuration file')
    init_parser.add_argument('--config', '-c', default='config.yaml', help='Configuration file path')
    init_parser.add_argument('--force', action='store_true', help='Overwrite an existing file')
    init_parser.set_defaults(func=init_config_command)

    validate_parser = subparsers.add_parser('validate-config', help='Validate a configuration file')
    validate_parser.add_argument('--config', '-c', default='config.yaml', help='Configuration file path')
    validate_parser.set_defaults(func=validate_config_command)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='pulse-prices',
        description='Reconstruct PulseChain DEX pair prices from on-chain Sync events',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  pulse-prices history 0xPAIR --range 1D
  pulse-prices history 0xPAIR --range 1W --format csv --output prices.csv
  pulse-prices spot 0xPAIR
  pulse-prices init-config --config config.yaml
        """
    )
    subparsers = parser.add_subparsers(dest='command')

    _add_history_command(subparsers)
    _add_spot_command(subparsers)
    _add_config_commands(subparsers)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not getattr(args, 'func', None):
        parser.print_help()
        return 1

    try:
        if inspect.iscoroutinefunction(args.func):
            return asyncio.run(args.func(args))
        return args.func(args)
    except (PulseChainCollectorError, aiohttp.ClientError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Interrupted", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
