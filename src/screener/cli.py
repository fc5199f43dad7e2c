#!/usr/bin/env python3
"""Command-line interface for the candle screener."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from screener.config import ScreenerConfig
    from screener.service import ScreenerService


def _build_service(args: argparse.Namespace) -> tuple[ScreenerConfig, ScreenerService]:
    from screener.config import load_screener_config
    from screener.service import ScreenerService

    config = load_screener_config(args.config)
    logging.basicConfig(
        level=getattr(logging, config.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return config, ScreenerService.from_config(config)


def _overrides(args: argparse.Namespace, names: list[str]) -> dict[str, Any]:
    return {name: getattr(args, name) for name in names if getattr(args, name, None) is not None}


def cmd_scan(args: argparse.Namespace) -> int:
    """Scan a watchlist for the three-candle breakout pattern."""
    from pydantic import ValidationError

    from screener.exceptions import ConfigError, ScreenerError
    from screener.types import Instrument, ScanParams

    try:
        config, service = _build_service(args)
        updates = _overrides(
            args, ["timeframe", "indicator", "window", "side", "breakout_mode", "preset"]
        )
        if args.no_live:
            updates["confirm_with_live"] = False
        params = ScanParams(**{**config.defaults.model_dump(), **updates})
        watchlist = [Instrument.parse(s) for s in (args.symbols or "").split(",") if s.strip()]
    except (ConfigError, ValidationError) as e:
        print(f"Configuration error: {e}")
        return 1
    except ScreenerError as e:
        print(f"Error: {e}")
        return 1

    print("=" * 60)
    print("SCREENER")
    print("=" * 60)
    print(f"Timeframe:   {params.timeframe} ({params.preset.value})")
    print(f"Indicator:   {params.indicator.value}({params.window})")
    print(f"Side:        {params.side.value}")
    print(f"Breakout:    {params.breakout_mode.value}")
    print(f"Live check:  {'on' if params.confirm_with_live else 'off'}")

    try:
        report = service.scan(params, watchlist or None)
    except ScreenerError as e:
        print(f"Scan failed: {e}")
        return 1

    print("\nRESULTS")
    for r in report.results:
        name = f"{r.exchange}:{r.symbol}"
        if r.matched and r.hit is not None:
            live = ""
            if r.live_quote is not None:
                live = f" | live {r.live_quote:.2f} breakout={r.live_breakout}"
            print(
                f"   MATCH  {name:<24} touch={r.hit.touch_index} side={r.hit.side_index} "
                f"breakout={r.hit.breakout_index} ref={r.hit.reference_high:.2f}{live}"
            )
        elif r.error is not None:
            print(f"   ERROR  {name:<24} {r.reason or r.error.value}: {r.error_message}")
        else:
            print(f"   -      {name:<24} no pattern")

    print(f"\nMatched {len(report.matched)}/{len(report.results)} | history id {report.history_id}")
    return 0


def cmd_candles(args: argparse.Namespace) -> int:
    """Fetch one symbol's candles annotated with an indicator."""
    from pydantic import ValidationError

    from screener.exceptions import ConfigError, ScreenerError
    from screener.types import ComputeParams

    try:
        config, service = _build_service(args)
        fields = ["timeframe", "indicator", "window", "preset"]
        defaults = config.defaults.model_dump(include=set(fields))
        params = ComputeParams(**{**defaults, **_overrides(args, fields)})
        report = service.compute(args.symbol, params, fallback_to_synthetic=args.fallback)
    except (ConfigError, ValidationError) as e:
        print(f"Configuration error: {e}")
        return 1
    except ScreenerError as e:
        print(f"Error: {e}")
        return 1

    print(f"{report.instrument} | source={report.source} | {len(report.candles)} candles")
    if report.error:
        print(f"Provider error: {report.error}")
    for c in report.candles[-args.tail :]:
        ind = "-" if c.indicator is None else f"{c.indicator:.2f}"
        print(
            f"   {c.time.isoformat()}  O {c.open:.2f}  H {c.high:.2f}  "
            f"L {c.low:.2f}  C {c.close:.2f}  V {c.volume}  {params.indicator.value} {ind}"
        )
    return 0


def cmd_history(args: argparse.Namespace) -> int:
    """List stored runs or show one of them."""
    from screener.exceptions import ConfigError, NotFoundError, StorageError
    from screener.history import dump_entry

    try:
        _, service = _build_service(args)
        if args.entry_id:
            print(dump_entry(service.get_history(args.entry_id)))
            return 0
        entries = service.list_history()
    except ConfigError as e:
        print(f"Configuration error: {e}")
        return 1
    except (NotFoundError, StorageError) as e:
        print(f"Error: {e}")
        return 1

    if not entries:
        print("No history yet.")
        return 0
    for entry in entries:
        symbols = ", ".join(r.symbol for r in entry.results) or "-"
        print(
            f"{entry.id}  {entry.timestamp.isoformat()}  "
            f"{entry.params.indicator.value}({entry.params.window}) {entry.params.timeframe}  "
            f"matches: {symbols}"
        )
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="screener",
        description="Scan a watchlist for a three-candle indicator breakout",
    )
    parser.add_argument("--config", help="Path to YAML configuration file")
    subparsers = parser.add_subparsers(dest="command", required=True)

    scan = subparsers.add_parser("scan", help="Scan a watchlist")
    scan.add_argument("--symbols", help="Comma-separated EXCHANGE:SYMBOL list (max 10)")
    scan.add_argument("--timeframe", help="Candle timeframe (e.g. 1m, 5m, 1h)")
    scan.add_argument("--indicator", help="VWAP, SMA, EMA or CLOSE")
    scan.add_argument("--window", type=int, help="Indicator window (2-200)")
    scan.add_argument("--side", help="ABOVE or BELOW")
    scan.add_argument("--breakout", dest="breakout_mode", help="CLOSE or HIGH")
    scan.add_argument("--preset", help="today, 1h, 2h, 4h or 2d")
    scan.add_argument("--no-live", action="store_true", help="Skip live price confirmation")
    scan.set_defaults(func=cmd_scan)

    candles = subparsers.add_parser("candles", help="Show one symbol's candles")
    candles.add_argument("--symbol", default="NSE:RELIANCE-EQ", help="EXCHANGE:SYMBOL")
    candles.add_argument("--timeframe", help="Candle timeframe")
    candles.add_argument("--indicator", help="VWAP, SMA, EMA or CLOSE")
    candles.add_argument("--window", type=int, help="Indicator window (2-200)")
    candles.add_argument("--preset", help="today, 1h, 2h, 4h or 2d")
    candles.add_argument("--tail", type=int, default=20, help="Candles to print")
    candles.add_argument(
        "--fallback", action="store_true", help="Use synthetic candles if the provider fails"
    )
    candles.set_defaults(func=cmd_candles)

    history = subparsers.add_parser("history", help="List or show stored runs")
    history.add_argument("entry_id", nargs="?", help="Entry id to show")
    history.set_defaults(func=cmd_history)

    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
