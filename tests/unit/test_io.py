from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from tests.unit._market import flat, series, strategy
from trendpilot.backtest.io import (
    CsvDirectorySource,
    InMemorySource,
    dump_result_json,
    load_prices_csv,
    load_strategies_yaml,
    parse_strategies,
)
from trendpilot.backtest.metrics import summarize
from trendpilot.backtest.rules import RuleId
from trendpilot.backtest.simulator import run_simulation
from trendpilot.core.config import StrategyDefaults
from trendpilot.core.exceptions import ConfigError, DataError
from trendpilot.core.types import Direction, PriceField, RebalanceFrequency

REPO_ROOT = Path(__file__).resolve().parents[2]


def test_load_prices_csv_cleans_rows(temp_dir: Path) -> None:
    path = temp_dir / "AAA.csv"
    path.write_text(
        "Date,Open,High,Low,Close,Volume\n"
        "2024-01-03,10,11,9,10.5,100\n"
        "2024-01-02,9,10,8,9.5,\n"
        "2024-01-04,,,,0,50\n"
        "2024-01-03,10,11,9,10.6,100\n"
    )
    points = load_prices_csv(path)

    assert [p.date for p in points] == ["2024-01-02", "2024-01-03"]
    assert points[0].volume == 0.0
    assert points[1].close == 10.6


def test_load_prices_csv_defaults_missing_prices_to_close(temp_dir: Path) -> None:
    path = temp_dir / "BBB.csv"
    path.write_text("date,close\n2024-01-02T00:00:00,20\n")
    (p,) = load_prices_csv(path)
    assert p.date == "2024-01-02"
    assert (p.open, p.high, p.low) == (20.0, 20.0, 20.0)


def test_load_prices_csv_requires_close(temp_dir: Path) -> None:
    path = temp_dir / "CCC.csv"
    path.write_text("date,open\n2024-01-02,1\n")
    with pytest.raises(DataError):
        load_prices_csv(path)


def test_load_prices_csv_reports_malformed_row(temp_dir: Path) -> None:
    path = temp_dir / "DDD.csv"
    path.write_text("date,close\n2024-01-02,1\n2024-01-03,n/a\n")
    with pytest.raises(DataError) as e:
        load_prices_csv(path)
    assert "row 3" in str(e.value)
    assert "DDD.csv" in str(e.value)
    assert isinstance(e.value.__cause__, ValueError)


def test_csv_directory_source(temp_dir: Path) -> None:
    (temp_dir / "AAA.csv").write_text("date,close\n2024-01-02,1\n2024-01-03,2\n")
    src = CsvDirectorySource(temp_dir)

    points = asyncio.run(src.get_market_data("aaa"))
    assert [p.close for p in points] == [1.0, 2.0]
    assert asyncio.run(src.get_market_data("ZZZ")) is None


def test_in_memory_source_round_trip() -> None:
    src = InMemorySource()
    src.save_market_data("AAA", flat(3))
    assert len(asyncio.run(src.get_market_data("AAA"))) == 3
    assert asyncio.run(src.get_market_data("BBB")) is None


def test_parse_strategies_applies_defaults() -> None:
    raw = {
        "strategies": [
            {"id": "x", "risk_on": [{"ticker": "QQQ"}], "risk_off": [{"ticker": "SH", "direction": "SHORT"}]},
            {"id": "y", "risk_on": [{"ticker": "SPY"}], "rule": "rule_4", "rebalance_frequency": "Bi-Weekly"},
        ]
    }
    out = parse_strategies(raw, StrategyDefaults(execution_delay_days=2))

    x, y = out["x"], out["y"]
    assert x.rule is RuleId.QUICK_TRIPLE
    assert x.rebalance_frequency is RebalanceFrequency.WEEKLY
    assert x.price_field is PriceField.AVG
    assert x.execution_delay_days == 2
    assert x.risk_off[0].direction is Direction.SHORT
    assert x.cost_rate == pytest.approx(0.002)
    assert y.rule is RuleId.MULTI_TIMEFRAME_SENTINEL
    assert y.rebalance_frequency is RebalanceFrequency.BIWEEKLY


@pytest.mark.parametrize(
    "raw",
    [
        {"strategies": [{"id": "x", "risk_on": []}]},
        {"strategies": [{"id": "x", "risk_on": [{"ticker": "A"}], "rule": "rule_9"}]},
        {"strategies": [{"id": "x", "risk_on": [{"ticker": "A"}], "transaction_cost_pct": 60, "slippage_pct": 40}]},
        {"strategies": [{"id": "x", "risk_on": [{"ticker": "A"}], "backtest_duration": "2W"}]},
        {"strategies": [{"id": "x", "risk_on": [{"ticker": "A"}]}, {"id": "x", "risk_on": [{"ticker": "B"}]}]},
        {"strategies": ["x"]},
        {"strategies": {"id": "x"}},
    ],
)
def test_parse_strategies_rejects_bad_definitions(raw) -> None:
    with pytest.raises(ConfigError):
        parse_strategies(raw)


def test_repo_strategy_file_loads() -> None:
    book = load_strategies_yaml(REPO_ROOT / "config" / "strategies.yaml")
    assert "meta_blend" in book
    assert book["meta_blend"].strategy_refs == ["tripletrend_qqq"]


def test_missing_strategy_file(temp_dir: Path) -> None:
    with pytest.raises(ConfigError):
        load_strategies_yaml(temp_dir / "none.yaml")


def test_result_json_is_serializable() -> None:
    res = run_simulation(strategy(), InMemorySource({"AAA": series([100.0 + i for i in range(30)])}))
    doc = json.loads(dump_result_json(res, summarize(res)))

    assert doc["strategy_id"] == "s1"
    assert len(doc["series"]) == 30
    assert doc["trades"][0]["side"] == "BUY"
    assert "strategy" in doc["summary"]

    bare = json.loads(dump_result_json(res, include_trades=False))
    assert "trades" not in bare
    assert "summary" not in bare
