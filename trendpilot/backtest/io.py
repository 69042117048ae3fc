"""trendpilot.backtest.io

File-backed collaborators for the simulator.

CSV schema (one file per ticker, ``<TICKER>.csv``):
- required: date, close
- optional: open, high, low, volume (missing prices default to close)

Strategy file: YAML mapping with a ``strategies`` list. Fields a strategy
leaves out come from ``Config.defaults``.
"""

from __future__ import annotations

import csv
import json
from collections.abc import Mapping, Sequence
from dataclasses import asdict
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from trendpilot.backtest.metrics import Summary
from trendpilot.core.config import StrategyDefaults
from trendpilot.core.exceptions import ConfigError, DataError
from trendpilot.core.models import StrategyConfig
from trendpilot.core.time import normalize_date
from trendpilot.core.types import PricePoint, SimulationResult


def load_prices_csv(path: str | Path) -> list[PricePoint]:
    p = Path(path)
    rows: list[dict[str, str]] = []
    with p.open("r", encoding="utf-8") as f:
        r = csv.DictReader(f)
        for row in r:
            rows.append({k.strip().lower(): (v.strip() if isinstance(v, str) else "") for k, v in row.items() if k is not None})

    if not rows:
        return []
    if "date" not in rows[0] or "close" not in rows[0]:
        raise DataError(f"CSV missing required columns date/close: {p}")

    def num(row: dict[str, str], name: str, default: float) -> float:
        v = row.get(name, "")
        if v is None or v == "":
            return default
        return float(v)

    by_date: dict[str, PricePoint] = {}
    for line, row in enumerate(rows, start=2):  # line 1 is the header
        try:
            close = num(row, "close", 0.0)
            if close <= 0:
                continue
            d = normalize_date(row["date"])
            point = PricePoint(
                date=d,
                open=num(row, "open", close),
                high=num(row, "high", close),
                low=num(row, "low", close),
                close=close,
                volume=num(row, "volume", 0.0),
            )
        except ValueError as e:
            raise DataError(f"Malformed price row {line} in {p}: {e}") from e
        by_date[d] = point
    return [by_date[d] for d in sorted(by_date)]


class CsvDirectorySource:
    """Reads ``<data_dir>/<TICKER>.csv``; absent file means no history."""

    def __init__(self, data_dir: str | Path) -> None:
        self.data_dir = Path(data_dir)

    def path_for(self, ticker: str) -> Path:
        return self.data_dir / f"{ticker.upper()}.csv"

    async def get_market_data(self, ticker: str) -> list[PricePoint] | None:
        path = self.path_for(ticker)
        if not path.exists():
            return None
        return load_prices_csv(path)


class InMemorySource:
    def __init__(self, data: Mapping[str, Sequence[PricePoint]] | None = None) -> None:
        self.data: dict[str, list[PricePoint]] = {k: list(v) for k, v in (data or {}).items()}

    async def get_market_data(self, ticker: str) -> list[PricePoint] | None:
        return self.data.get(ticker)

    def save_market_data(self, ticker: str, points: Sequence[PricePoint]) -> None:
        self.data[ticker] = list(points)


def parse_strategies(raw: Any, defaults: StrategyDefaults | None = None) -> dict[str, StrategyConfig]:
    defaults = defaults or StrategyDefaults()
    items = raw.get("strategies", []) if isinstance(raw, dict) else raw
    if not isinstance(items, list):
        raise ConfigError("Strategy file must contain a list under 'strategies'")

    out: dict[str, StrategyConfig] = {}
    base = defaults.model_dump()
    for item in items:
        if not isinstance(item, dict):
            raise ConfigError(f"Strategy entry must be a mapping, got {type(item).__name__}")
        try:
            s = StrategyConfig(**{**base, **item})
        except ValidationError as e:
            raise ConfigError(f"Invalid strategy {item.get('id', '?')}: {e}") from e
        if s.id in out:
            raise ConfigError(f"Duplicate strategy id: {s.id}")
        out[s.id] = s
    return out


def load_strategies_yaml(path: str | Path, defaults: StrategyDefaults | None = None) -> dict[str, StrategyConfig]:
    p = Path(path)
    if not p.exists():
        raise ConfigError(f"Strategy file not found: {p}")
    try:
        raw = yaml.safe_load(p.read_text()) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Strategy file is not valid YAML: {p}") from e
    return parse_strategies(raw, defaults)


def result_to_dict(result: SimulationResult, summary: Summary | None = None, *, include_trades: bool = True) -> dict[str, Any]:
    out: dict[str, Any] = {
        "strategy_id": result.strategy_id,
        "start_date": result.start_date,
        "end_date": result.end_date,
        "series": [asdict(d) for d in result.series],
        "regime_switches": [asdict(s) for s in result.regime_switches],
    }
    if include_trades:
        out["trades"] = [{**asdict(t), "side": t.side.value} for t in result.trades]
    if summary is not None:
        out["summary"] = asdict(summary)
    return out


def dump_result_json(result: SimulationResult, summary: Summary | None = None, *, include_trades: bool = True) -> str:
    return json.dumps(result_to_dict(result, summary, include_trades=include_trades), indent=2, sort_keys=True)
