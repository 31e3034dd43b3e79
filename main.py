#!/usr/bin/env python3
"""
Options Strategy Engine
Main entry point.

Usage:
    python main.py generate  snapshot.json            # Ranked candidates
    python main.py custom    snapshot.json legs.json  # Price user-chosen legs
    python main.py backtest  snapshot.json --label A  # Backtest a candidate
    python main.py simulate  snapshot.json --label A --entry-date 2024-03-15
    python main.py available --symbol SPY
"""

import argparse
import json
import logging
import os
import signal
import sys
import threading
from typing import Dict, List, Optional

from utils import load_config, setup_logging, validate_config
from shared.exceptions import BacktestError, ChainDataError
from shared.token_cache import AccessTokenCache
from shared.types import AppConfig, ChainSnapshot
from strategies import (
    CustomLeg, EngineSettings, GenerateParams, StrategyCard,
    build_custom_card, generate_strategies, normalize_chain, strategy_labels,
)
from backtest import (
    BacktestClient, PerformanceMetrics, RunStatus, translate_to_backtest,
)

logger = logging.getLogger(__name__)


def load_snapshot(path: str) -> ChainSnapshot:
    """Read a chain snapshot JSON file written by the market-data side."""
    try:
        with open(path, 'r') as f:
            snapshot = json.load(f)
    except (OSError, ValueError) as e:
        raise ChainDataError(f"Cannot read chain snapshot {path}: {e}") from e

    if not isinstance(snapshot, dict):
        raise ChainDataError(f"Chain snapshot {path} is not a JSON object")
    for key in ('current_price', 'iv_rank', 'expiration', 'dte', 'strikes'):
        if key not in snapshot:
            raise ChainDataError(f"Chain snapshot {path} is missing '{key}'")
    if not isinstance(snapshot['strikes'], list):
        raise ChainDataError("'strikes' must be a list")
    if not isinstance(snapshot.get('quotes', {}), dict):
        raise ChainDataError("'quotes' must be an object keyed by market data symbol")
    return snapshot


def params_from_snapshot(snapshot: ChainSnapshot) -> GenerateParams:
    strikes = normalize_chain(snapshot['strikes'], snapshot.get('quotes', {}))
    return GenerateParams(
        strikes=strikes,
        current_price=float(snapshot['current_price']),
        iv_rank=float(snapshot['iv_rank']),
        expiration=str(snapshot['expiration']),
        dte=int(snapshot['dte']),
        symbol=str(snapshot.get('symbol', '')),
        iv30=snapshot.get('iv30'),
        hv30=snapshot.get('hv30'),
    )


def _pick_card(cards: List[StrategyCard], label: str) -> StrategyCard:
    for card in cards:
        if card.label == label.upper():
            return card
    available = ", ".join(f"{c.label}) {c.name.value}" for c in cards) or "none"
    raise SystemExit(f"No candidate labelled {label!r} (available: {available})")


def _print_cards(cards: List[StrategyCard], as_json: bool) -> None:
    if as_json:
        print(json.dumps([c.to_dict() for c in cards], indent=2, default=str))
        return
    if not cards:
        print("No strategy cleared the gates for this expiration.")
        return
    for card in cards:
        legs = ", ".join(
            f"{l.side.value} {l.strike:g}{l.option_type.value[0].upper()} @ {l.price:.2f}"
            for l in card.legs
        )
        premium = (
            f"credit ${card.net_credit:.2f}" if card.net_credit is not None
            else f"debit ${card.net_debit:.2f}"
        )
        max_loss = "unlimited" if card.is_unlimited else f"${card.max_loss:,.2f}"
        pop = f"{card.pop:.0%}" if card.pop is not None else "n/a"
        print(f"{card.label}) {card.name.value} [{card.expiration}, {card.dte} DTE]")
        print(f"   {legs}")
        print(f"   {premium} | max profit ${card.max_profit or 0:,.2f} | max loss {max_loss}")
        print(f"   PoP {pop} | EV ${card.ev:,.2f} ({card.ev_per_risk:+.2%} of risk) | "
              f"theta ${card.theta_per_day:.2f}/day | breakevens {card.breakevens}")
        if card.has_wide_spread:
            print("   warning: at least one leg has a wide bid/ask spread")


def build_client(config: AppConfig) -> BacktestClient:
    token = (config.get('backtest', {}) or {}).get('access_token') or os.environ.get('BACKTESTER_ACCESS_TOKEN')
    cache = AccessTokenCache()
    if token and not token.startswith('${'):
        cache.set(token)
    return BacktestClient.from_config(config, cache)


def cmd_generate(args, config: AppConfig) -> int:
    params = params_from_snapshot(load_snapshot(args.snapshot))
    if not args.json:
        tiers = ", ".join(f"{l.name} ({l.kind})" for l in strategy_labels(params.iv_rank))
        print(f"IV rank {params.iv_rank_pct:.0f}%: {tiers}\n")
    cards = generate_strategies(params, EngineSettings.from_config(config))
    _print_cards(cards, args.json)
    return 0


def cmd_custom(args, config: AppConfig) -> int:
    snapshot = load_snapshot(args.snapshot)
    try:
        with open(args.legs, 'r') as f:
            legs = [CustomLeg.from_dict(d) for d in json.load(f)]
    except (OSError, ValueError, KeyError, TypeError) as e:
        raise ChainDataError(f"Cannot read custom legs {args.legs}: {e}") from e

    card = build_custom_card(
        legs, snapshot.get('quotes', {}), str(snapshot['expiration']),
        int(snapshot['dte']), float(snapshot['current_price']),
    )
    if card is None:
        print("None of the legs could be priced.")
        return 1
    _print_cards([card], args.json)
    return 0


def cmd_backtest(args, config: AppConfig, stop_event: threading.Event) -> int:
    snapshot = load_snapshot(args.snapshot)
    params = params_from_snapshot(snapshot)
    card = _pick_card(generate_strategies(params, EngineSettings.from_config(config)), args.label)

    bt = translate_to_backtest(
        card, args.symbol or params.symbol,
        dte=args.dte,
        start_date=args.start_date,
        end_date=args.end_date,
        history_years=config['backtest'].get('history_years', 5),
    )
    run = build_client(config).run_backtest(bt, stop_event=stop_event)
    if run.status != RunStatus.COMPLETED:
        print(run.message)
        return 0 if run.status == RunStatus.STILL_RUNNING else 1

    metrics = PerformanceMetrics(config)
    print(metrics.generate_report(run.result))
    if args.save:
        print(f"\nSaved: {metrics.save_report(run.result)}")
    return 0


def cmd_simulate(args, config: AppConfig) -> int:
    params = params_from_snapshot(load_snapshot(args.snapshot))
    card = _pick_card(generate_strategies(params, EngineSettings.from_config(config)), args.label)
    bt = translate_to_backtest(card, args.symbol or params.symbol, dte=args.dte)

    trade = build_client(config).simulate_trade(
        bt.symbol, bt.strategy_type, bt.legs, args.entry_date, dte=bt.dte,
        management=bt.management,
    )
    print(f"{bt.symbol} {bt.strategy_type}: {trade.entry_date} -> {trade.exit_date or '?'} "
          f"({trade.holding_days} days, {trade.exit_reason})")
    print(f"P&L ${trade.pnl:,.2f} ({trade.pnl_percent:.1f}%)")
    for day in trade.daily_pnl:
        print(f"  {day.date}  ${day.pnl:>9,.2f}  underlying {day.underlying_price:,.2f}")
    return 0


def cmd_available(args, config: AppConfig) -> int:
    availability = build_client(config).check_availability(args.symbol)
    if not availability.available:
        print(availability.message)
        return 1
    print(f"{availability.symbol}: {availability.start_date} to {availability.end_date}")
    print("Strategies: " + ", ".join(availability.strategies))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Options Strategy Engine',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py generate snapshots/spy.json
  python main.py generate snapshots/spy.json --json
  python main.py custom snapshots/spy.json my_legs.json
  python main.py backtest snapshots/spy.json --label A --save
  python main.py simulate snapshots/spy.json --label B --entry-date 2024-03-15
  python main.py available --symbol QQQ
        """
    )
    parser.add_argument(
        '--config',
        default='config.yaml',
        help='Config file path (default: config.yaml)'
    )
    sub = parser.add_subparsers(dest='command', required=True)

    p = sub.add_parser('generate', help='Rank strategy candidates for a chain snapshot')
    p.add_argument('snapshot', help='Chain snapshot JSON file')
    p.add_argument('--json', action='store_true', help='Print cards as JSON')

    p = sub.add_parser('custom', help='Price user-chosen legs against a chain snapshot')
    p.add_argument('snapshot', help='Chain snapshot JSON file')
    p.add_argument('legs', help='JSON list of {type, side, strike, streamerSymbol}')
    p.add_argument('--json', action='store_true', help='Print the card as JSON')

    p = sub.add_parser('backtest', help='Backtest a ranked candidate over history')
    p.add_argument('snapshot', help='Chain snapshot JSON file')
    p.add_argument('--label', default='A', help='Candidate label (default: A)')
    p.add_argument('--symbol', help='Override the snapshot symbol')
    p.add_argument('--dte', type=int, help='Target DTE (default: candidate DTE)')
    p.add_argument('--start-date', help='YYYY-MM-DD (default: 5 years ago)')
    p.add_argument('--end-date', help='YYYY-MM-DD (default: today)')
    p.add_argument('--save', action='store_true', help='Write text + JSON report')

    p = sub.add_parser('simulate', help='Simulate one entry of a ranked candidate')
    p.add_argument('snapshot', help='Chain snapshot JSON file')
    p.add_argument('--label', default='A', help='Candidate label (default: A)')
    p.add_argument('--symbol', help='Override the snapshot symbol')
    p.add_argument('--entry-date', required=True, help='YYYY-MM-DD')
    p.add_argument('--dte', type=int, default=45, help='Target DTE (default: 45)')

    p = sub.add_parser('available', help='Check backtest data availability')
    p.add_argument('--symbol', required=True)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point.
    """
    args = build_parser().parse_args(argv)

    config = load_config(args.config)
    validate_config(config)
    setup_logging(config)

    # First SIGINT stops backtest polling; a second one exits.
    stop_event = threading.Event()

    def _shutdown_handler(signum, frame):
        sig_name = signal.Signals(signum).name
        if stop_event.is_set():
            sys.exit(130)
        logger.info(f"Received {sig_name}, stopping...")
        stop_event.set()

    signal.signal(signal.SIGINT, _shutdown_handler)
    signal.signal(signal.SIGTERM, _shutdown_handler)

    try:
        if args.command == 'generate':
            return cmd_generate(args, config)
        if args.command == 'custom':
            return cmd_custom(args, config)
        if args.command == 'backtest':
            return cmd_backtest(args, config, stop_event)
        if args.command == 'simulate':
            return cmd_simulate(args, config)
        if args.command == 'available':
            return cmd_available(args, config)
    except (ChainDataError, BacktestError) as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
