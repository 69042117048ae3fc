from __future__ import annotations

import numpy as np
import pytest

from trendpilot.backtest.metrics import (
    cagr,
    compute_metrics,
    daily_returns,
    max_drawdown,
    rolling_returns,
    summarize,
    trailing_cagr,
    volatility,
    yearly_stats,
)
from trendpilot.core.config import MetricsConfig
from trendpilot.core.types import (
    RegimeSwitchEvent,
    SimDayRecord,
    SimulationResult,
    TradeRecord,
    TradeSide,
)


def _result(rows: list[tuple[str, float, float]]) -> SimulationResult:
    series = [
        SimDayRecord(date=d, nav=n, benchmark_nav=b, risk_on_pct=100.0, risk_off_pct=0.0, rebalanced=False)
        for d, n, b in rows
    ]
    return SimulationResult(strategy_id="s1", series=series)


def test_daily_returns_ignore_zero_base() -> None:
    r = daily_returns(np.array([100.0, 110.0, 0.0, 50.0]))
    assert r[0] == pytest.approx(0.1)
    assert r[1] == pytest.approx(-1.0)
    assert r[2] == 0.0
    assert daily_returns(np.array([1.0])).size == 0


def test_max_drawdown_is_negative_peak_to_trough() -> None:
    assert max_drawdown(np.array([100.0, 120.0, 90.0, 130.0, 117.0])) == pytest.approx(-0.25)
    assert max_drawdown(np.array([1.0, 2.0, 3.0])) == 0.0
    assert max_drawdown(np.array([])) == 0.0


def test_cagr_annualizes_by_observation_count() -> None:
    v = np.linspace(100.0, 121.0, 504)
    assert cagr(v) == pytest.approx(1.21 ** (252 / 504) - 1.0)
    assert cagr(np.array([100.0])) == 0.0
    assert cagr(np.array([0.0, 10.0])) == 0.0


def test_volatility_drops_out_of_band_returns() -> None:
    r = np.array([0.01, -0.01, 0.01, -0.01])
    base = volatility(r)
    assert base == pytest.approx(np.std(r, ddof=1) * np.sqrt(252))

    noisy = np.append(r, [5.0, -0.95])
    assert volatility(noisy) == pytest.approx(base)
    assert volatility(np.array([0.01])) == 0.0


def test_compute_metrics_sharpe_uses_risk_free_rate() -> None:
    rng = np.random.default_rng(7)
    v = 100.0 * np.cumprod(1.0 + rng.normal(0.0005, 0.01, 600))
    cfg = MetricsConfig(risk_free_rate=0.02)
    m = compute_metrics(v, cfg=cfg)

    assert m.total_return == pytest.approx(v[-1] / v[0] - 1.0)
    assert m.sharpe == pytest.approx((m.cagr - 0.02) / m.volatility)
    assert m.max_drawdown <= 0.0


def test_flat_series_has_zero_metrics() -> None:
    m = compute_metrics(np.full(50, 10000.0))
    assert m.total_return == 0.0
    assert m.cagr == 0.0
    assert m.volatility == 0.0
    assert m.sharpe == 0.0


def test_rolling_returns_window_stats() -> None:
    v = 100.0 * (1.001 ** np.arange(400))
    stats = rolling_returns(v, 252)
    expected = 1.001**252 - 1.0
    assert stats.min == pytest.approx(expected)
    assert stats.max == pytest.approx(expected)

    short = rolling_returns(v[:100], 252)
    assert (short.min, short.mean, short.max) == (0.0, 0.0, 0.0)


def test_trailing_cagr_needs_enough_history() -> None:
    v = np.linspace(100.0, 200.0, 300)
    assert trailing_cagr(v, 756) is None
    assert trailing_cagr(v, 252) == pytest.approx(cagr(v[-252:]))


def test_yearly_stats_most_recent_first() -> None:
    res = _result(
        [
            ("2022-12-29", 100.0, 100.0),
            ("2022-12-30", 110.0, 105.0),
            ("2023-01-03", 110.0, 105.0),
            ("2023-06-01", 121.0, 84.0),
        ]
    )
    res.trades.append(TradeRecord(date="2023-01-03", ticker="A", side=TradeSide.BUY, notional=1.0, shares=1.0, price=1.0))
    res.regime_switches.append(RegimeSwitchEvent(date="2022-12-30", from_weight=1.0, to_weight=0.5))

    years = yearly_stats(res)
    assert [y.year for y in years] == [2023, 2022]
    assert years[0].strategy_return == pytest.approx(0.1)
    assert years[0].benchmark_return == pytest.approx(-0.2)
    assert years[0].trades == 1
    assert years[1].switches == 1


def test_summarize_reports_latest_allocation_and_tenors() -> None:
    rows = [(f"2024-01-{i + 1:02d}", 100.0 + i, 100.0) for i in range(20)]
    s = summarize(_result(rows))

    assert s.latest_allocation == {"date": "2024-01-20", "risk_on": 100.0, "risk_off": 0.0}
    assert s.tenor_cagr["1Y"]["strategy"] is None
    assert [r.window for r in s.rolling["strategy"]] == [63, 252, 756]
    assert s.benchmark.total_return == 0.0
