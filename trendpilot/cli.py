"""trendpilot.cli

Command line interface entry point for trendpilot.

Design constraints:
- argparse-based.
- Lazy imports: do not import numpy or pydantic at parse time.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class CliContext:
    repo_root: Path


def _repo_root_from_cwd() -> Path:
    return Path.cwd()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="trendpilot",
        description="Backtest risk-on/risk-off rotation strategies.",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print version and exit.",
    )

    sub = parser.add_subparsers(dest="command")

    p_run = sub.add_parser("run", help="Simulate one strategy and print its statistics")
    p_run.add_argument("strategy_id")
    p_run.add_argument("--strategies", type=Path, default=None, help="Strategy YAML file.")
    p_run.add_argument("--data-dir", type=Path, default=None, help="Directory of <TICKER>.csv files.")
    p_run.add_argument("--start", default=None, help="Start date (YYYY-MM-DD).")
    p_run.add_argument("--end", default=None, help="End date (YYYY-MM-DD).")
    p_run.add_argument("--json", action="store_true", help="Emit the full result as JSON.")
    p_run.add_argument("--trades", action="store_true", help="Include the trade ledger in the output.")

    sub.add_parser("rules", help="List available regime rules")

    p_val = sub.add_parser("validate", help="Validate the strategy file")
    p_val.add_argument("--strategies", type=Path, default=None, help="Strategy YAML file.")

    return parser


def _print_version() -> None:
    from trendpilot import __version__

    print(f"trendpilot v{__version__}")


def _configure_logging(level: str, *, json_output: bool) -> None:
    handler = logging.StreamHandler(sys.stderr)
    if json_output:
        handler.setFormatter(_JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    # no-op when the host already configured the root logger
    logging.basicConfig(level=level.upper(), handlers=[handler])


class _JsonFormatter(logging.Formatter):
    _STD = set(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
        }
        payload.update({k: v for k, v in vars(record).items() if k not in self._STD})
        return json.dumps(payload, default=str)


def _load_config(ctx: CliContext):
    from trendpilot.core.config import Config

    cfg = Config.load(ctx.repo_root)
    _configure_logging(cfg.logging.level, json_output=cfg.logging.json_output)
    return cfg


def _strategies_path(ctx: CliContext, cfg, override: Path | None) -> Path:
    p = override or cfg.data.strategies_file
    return p if p.is_absolute() else ctx.repo_root / p


def _cmd_run(ctx: CliContext, args: argparse.Namespace) -> int:
    from trendpilot.backtest.io import CsvDirectorySource, dump_result_json, load_strategies_yaml
    from trendpilot.backtest.metrics import summarize
    from trendpilot.backtest.simulator import Simulator
    from trendpilot.core.exceptions import TrendPilotError

    try:
        cfg = _load_config(ctx)
        strategies = load_strategies_yaml(_strategies_path(ctx, cfg, args.strategies), cfg.defaults)
        strategy = strategies.get(args.strategy_id)
        if strategy is None:
            print(f"error: unknown strategy: {args.strategy_id}", file=sys.stderr)
            return 2

        data_dir = args.data_dir or cfg.data.data_dir
        if not data_dir.is_absolute():
            data_dir = ctx.repo_root / data_dir

        sim = Simulator(CsvDirectorySource(data_dir), strategies=strategies, settings=cfg.simulation)
        result = sim.run(strategy, start_date=args.start, end_date=args.end)
    except TrendPilotError as e:
        print(f"run failed: {e}", file=sys.stderr)
        return 1

    summary = summarize(result, cfg=cfg.metrics)
    if args.json:
        print(dump_result_json(result, summary, include_trades=args.trades))
        return 0

    s, b = summary.strategy, summary.benchmark
    print(f"{strategy.id} ({strategy.name or strategy.id})")
    print(f"- window: {result.start_date} .. {result.end_date} ({len(result.series)} days)")
    print(f"- final nav: {result.series[-1].nav:,.2f} (benchmark {result.series[-1].benchmark_nav:,.2f})")
    print(f"- total return: {s.total_return:.2%} (benchmark {b.total_return:.2%})")
    print(f"- cagr: {s.cagr:.2%} (benchmark {b.cagr:.2%})")
    print(f"- max drawdown: {s.max_drawdown:.2%} (benchmark {b.max_drawdown:.2%})")
    print(f"- volatility: {s.volatility:.2%} (benchmark {b.volatility:.2%})")
    print(f"- sharpe: {s.sharpe:.2f} (benchmark {b.sharpe:.2f})")
    print(f"- trades: {len(result.trades)}, regime switches: {len(result.regime_switches)}")
    if summary.latest_allocation:
        la = summary.latest_allocation
        print(f"- latest allocation ({la['date']}): risk-on {la['risk_on']}%, risk-off {la['risk_off']}%")
    if args.trades:
        for t in result.trades:
            print(f"  {t.date} {t.side.value:<4} {t.ticker:<10} {t.shares:>14.4f} @ {t.price:>10.4f} = {t.notional:>12.2f} (cost {t.cost:.2f})")
    return 0


def _cmd_rules(ctx: CliContext, args: argparse.Namespace) -> int:
    from trendpilot.backtest.rules import LEGACY_RULE_IDS, list_rules

    legacy = {v: k for k, v in LEGACY_RULE_IDS.items()}
    for rule in list_rules():
        conds = ", ".join(f"{c.describe()} ({c.weight:.2f})" for c in rule.conditions)
        print(f"{rule.id.value} [{legacy.get(rule.id, '-')}] {rule.name}: {conds}")
    return 0


def _cmd_validate(ctx: CliContext, args: argparse.Namespace) -> int:
    from trendpilot.backtest.io import InMemorySource, load_strategies_yaml
    from trendpilot.backtest.simulator import Simulator
    from trendpilot.core.exceptions import TrendPilotError

    try:
        cfg = _load_config(ctx)
        strategies = load_strategies_yaml(_strategies_path(ctx, cfg, args.strategies), cfg.defaults)
        sim = Simulator(InMemorySource(), strategies=strategies)
        for s in strategies.values():
            sim.check_references(s)
    except TrendPilotError as e:
        print(f"invalid: {e}", file=sys.stderr)
        return 1

    print(f"ok: {len(strategies)} strategies")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        _print_version()
        return 0

    if not args.command:
        parser.print_help()
        return 2

    ctx = CliContext(repo_root=_repo_root_from_cwd())

    dispatch: dict[str, Callable[[CliContext, argparse.Namespace], int]] = {
        "run": _cmd_run,
        "rules": _cmd_rules,
        "validate": _cmd_validate,
    }

    fn = dispatch.get(str(args.command))
    if fn is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 2

    return int(fn(ctx, args))


if __name__ == "__main__":
    raise SystemExit(main())
