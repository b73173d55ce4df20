"""
CLI commands for CoinPeek cache administration.
"""

import argparse
import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

from coinpeek.config import (
    DEFAULT_CONFIG_PATH,
    ConfigValidationError,
    load_config,
    write_default_config,
)
from coinpeek.database.connection import Database
from coinpeek.database.repository import (
    CandleRepository,
    PriceRepository,
    SyncMetadataRepository,
)
from coinpeek.main import LAST_SYNC_KEY


def init_config(path: str, force: bool = False) -> bool:
    """Write the default config. Returns False if the file already exists."""
    if Path(path).exists() and not force:
        return False
    write_default_config(path)
    return True


def latest_prices(db: Database, symbols: list[str]) -> list:
    """Latest cached record for each symbol that has one."""
    repo = PriceRepository(db)
    records = []
    for symbol in symbols:
        record = repo.load_latest(symbol.upper())
        if record is not None:
            records.append(record)
    return records


def format_candle_time(timestamp_ms: int) -> str:
    return datetime.fromtimestamp(timestamp_ms / 1000).strftime("%Y-%m-%d %H:%M")


def main(argv: Optional[list[str]] = None):
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="CoinPeek CLI")
    parser.add_argument(
        "--config", default=DEFAULT_CONFIG_PATH, help="Path to config file"
    )
    parser.add_argument("--db", help="Database path (overrides config)")

    subparsers = parser.add_subparsers(dest="command", help="Command")

    # Config commands
    config_parser = subparsers.add_parser("config", help="Configuration")
    config_subparsers = config_parser.add_subparsers(dest="action")
    init_parser = config_subparsers.add_parser("init", help="Write default config")
    init_parser.add_argument(
        "--force", action="store_true", help="Overwrite an existing file"
    )

    # DB commands
    db_parser = subparsers.add_parser("db", help="Database management")
    db_subparsers = db_parser.add_subparsers(dest="action")
    db_subparsers.add_parser("stats", help="Show row counts and size")
    cleanup_parser = db_subparsers.add_parser("cleanup", help="Delete old rows")
    cleanup_parser.add_argument(
        "--price-days", type=int, default=30, help="Days of prices to keep"
    )
    cleanup_parser.add_argument(
        "--candle-days", type=int, default=90, help="Days of candles to keep"
    )

    # Price commands
    prices_parser = subparsers.add_parser("prices", help="Cached prices")
    prices_subparsers = prices_parser.add_subparsers(dest="action")
    latest_parser = prices_subparsers.add_parser("latest", help="Latest cached prices")
    latest_parser.add_argument("--symbol", help="Single symbol")
    active_parser = prices_subparsers.add_parser(
        "active", help="Symbols updated recently"
    )
    active_parser.add_argument(
        "--minutes", type=int, default=60, help="Look-back window"
    )

    # Candle commands
    candles_parser = subparsers.add_parser("candles", help="Cached candles")
    candles_subparsers = candles_parser.add_subparsers(dest="action")
    show_candles_parser = candles_subparsers.add_parser("show", help="Show candles")
    show_candles_parser.add_argument("--symbol", required=True, help="Trading pair")
    show_candles_parser.add_argument("--interval", help="Kline interval")
    show_candles_parser.add_argument("--limit", type=int, default=20)

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    if args.command == "config":
        if args.action == "init":
            if init_config(args.config, force=args.force):
                print(f"Wrote default config to {args.config}")
            else:
                print(f"{args.config} already exists, use --force to overwrite")
                return 1
        else:
            config_parser.print_help()
        return 0

    try:
        config = load_config(args.config)
    except ConfigValidationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    # Initialize database
    db = Database(args.db or config.database.path)
    db.initialize()

    try:
        if args.command == "db":
            if args.action == "stats":
                stats = db.stats()
                print(f"Price records: {stats.price_records}")
                print(f"Candle records: {stats.candle_records}")
                print(f"Database size: {stats.database_size_mb:.2f} MB")
                last_sync = SyncMetadataRepository(db).get(LAST_SYNC_KEY)
                print(f"Last sync: {last_sync or 'never'}")
            elif args.action == "cleanup":
                deleted = db.cleanup_old_data(
                    price_days=args.price_days, candle_days=args.candle_days
                )
                print(f"Deleted {deleted} rows")
            else:
                db_parser.print_help()

        elif args.command == "prices":
            if args.action == "latest":
                symbols = [args.symbol] if args.symbol else config.symbols
                records = latest_prices(db, symbols)
                if not records:
                    print("No cached prices")
                for r in records:
                    print(
                        f"{r.symbol}: ${r.price:.2f} "
                        f"({r.price_change_percent:+.2f}%, vol {r.volume:,.0f})"
                    )
            elif args.action == "active":
                repo = PriceRepository(db)
                for symbol in repo.active_symbols(timedelta(minutes=args.minutes)):
                    print(symbol)
            else:
                prices_parser.print_help()

        elif args.command == "candles":
            if args.action == "show":
                interval = args.interval or config.chart.interval
                repo = CandleRepository(db)
                candles = repo.load_candles(args.symbol.upper(), interval, args.limit)
                if not candles:
                    print(f"No cached {interval} candles for {args.symbol.upper()}")
                for c in candles:
                    print(
                        f"{format_candle_time(c.timestamp)} "
                        f"O {c.open:.2f} H {c.high:.2f} L {c.low:.2f} C {c.close:.2f}"
                    )
            else:
                candles_parser.print_help()
    finally:
        db.close()

    return 0


if __name__ == "__main__":
    sys.exit(main())
