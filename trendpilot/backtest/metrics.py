"""trendpilot.backtest.metrics

Performance statistics over a simulated NAV path.

Reporting, not accounting: the engine does not depend on anything here.
Free market data is noisy, so single-day returns outside a sane band are
dropped from volatility instead of poisoning it.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from trendpilot.core.config import MetricsConfig
from trendpilot.core.types import SimulationResult


@dataclass(frozen=True, slots=True)
class Metrics:
    total_return: float
    cagr: float
    max_drawdown: float
    volatility: float
    sharpe: float


@dataclass(frozen=True, slots=True)
class RollingStats:
    window: int
    min: float
    mean: float
    max: float


@dataclass(frozen=True, slots=True)
class YearStats:
    year: int
    strategy_return: float
    benchmark_return: float
    trades: int
    switches: int


@dataclass(frozen=True, slots=True)
class Summary:
    strategy: Metrics
    benchmark: Metrics
    rolling: dict[str, list[RollingStats]] = field(default_factory=dict)
    tenor_cagr: dict[str, dict[str, float | None]] = field(default_factory=dict)
    yearly: list[YearStats] = field(default_factory=list)
    latest_allocation: dict[str, float | str] | None = None


_EMPTY = Metrics(total_return=0.0, cagr=0.0, max_drawdown=0.0, volatility=0.0, sharpe=0.0)


def daily_returns(values: np.ndarray) -> np.ndarray:
    v = values.astype(np.float64)
    if v.size < 2:
        return np.zeros(0, dtype=np.float64)
    prev = v[:-1]
    with np.errstate(divide="ignore", invalid="ignore"):
        r = np.where(prev != 0, v[1:] / prev - 1.0, 0.0)
    r[~np.isfinite(r)] = 0.0
    return r


def max_drawdown(values: np.ndarray) -> float:
    """Peak-to-trough loss as a negative fraction (0.0 when never under water)."""

    v = values.astype(np.float64)
    if v.size == 0:
        return 0.0
    peak = np.maximum.accumulate(v)
    with np.errstate(divide="ignore", invalid="ignore"):
        dd = np.where(peak > 0, v / peak - 1.0, 0.0)
    return float(dd.min())


def cagr(values: np.ndarray, *, periods_per_year: int = 252) -> float:
    v = values.astype(np.float64)
    if v.size < 2 or v[0] <= 0 or v[-1] <= 0:
        return 0.0
    return float((v[-1] / v[0]) ** (periods_per_year / v.size) - 1.0)


def volatility(returns: np.ndarray, *, cfg: MetricsConfig | None = None) -> float:
    cfg = cfg or MetricsConfig()
    r = returns.astype(np.float64)
    r = r[np.isfinite(r) & (r <= cfg.max_daily_return) & (r >= cfg.min_daily_return)]
    if r.size < 2:
        return 0.0
    return float(np.std(r, ddof=1) * np.sqrt(cfg.trading_days_per_year))


def compute_metrics(values: np.ndarray, *, cfg: MetricsConfig | None = None) -> Metrics:
    cfg = cfg or MetricsConfig()
    v = values.astype(np.float64)
    if v.size < 2:
        return _EMPTY
    first, last = float(v[0]), float(v[-1])
    total_return = (last / first - 1.0) if first else 0.0
    g = cagr(v, periods_per_year=cfg.trading_days_per_year)
    vol = volatility(daily_returns(v), cfg=cfg)
    return Metrics(
        total_return=float(total_return),
        cagr=g,
        max_drawdown=max_drawdown(v),
        volatility=vol,
        sharpe=(g - cfg.risk_free_rate) / vol if vol > 0 else 0.0,
    )


def rolling_returns(values: np.ndarray, window: int, *, periods_per_year: int = 252) -> RollingStats:
    """Annualised return over every ``window``-day span."""

    v = values.astype(np.float64)
    if window <= 0 or v.size <= window:
        return RollingStats(window=window, min=0.0, mean=0.0, max=0.0)
    years = window / periods_per_year
    base = v[:-window]
    with np.errstate(divide="ignore", invalid="ignore"):
        rolls = np.abs(v[window:] / base) ** (1.0 / years) - 1.0
    rolls = rolls[np.isfinite(rolls)]
    if rolls.size == 0:
        return RollingStats(window=window, min=0.0, mean=0.0, max=0.0)
    return RollingStats(window=window, min=float(rolls.min()), mean=float(rolls.mean()), max=float(rolls.max()))


def trailing_cagr(values: np.ndarray, days: int, *, periods_per_year: int = 252) -> float | None:
    v = values.astype(np.float64)
    if v.size < days or days < 2:
        return None
    return cagr(v[-days:], periods_per_year=periods_per_year)


def yearly_stats(result: SimulationResult) -> list[YearStats]:
    """Calendar-year returns and activity, most recent year first."""

    years = sorted({int(d.date[:4]) for d in result.series}, reverse=True)
    out: list[YearStats] = []
    for yr in years:
        rows = [d for d in result.series if int(d.date[:4]) == yr]
        if len(rows) >= 2 and rows[0].nav and rows[0].benchmark_nav:
            s_ret = rows[-1].nav / rows[0].nav - 1.0
            b_ret = rows[-1].benchmark_nav / rows[0].benchmark_nav - 1.0
        else:
            s_ret = b_ret = 0.0
        out.append(
            YearStats(
                year=yr,
                strategy_return=float(s_ret),
                benchmark_return=float(b_ret),
                trades=sum(1 for t in result.trades if int(t.date[:4]) == yr),
                switches=sum(1 for s in result.regime_switches if int(s.date[:4]) == yr),
            )
        )
    return out


def summarize(result: SimulationResult, *, cfg: MetricsConfig | None = None) -> Summary:
    cfg = cfg or MetricsConfig()
    nav = np.array([d.nav for d in result.series], dtype=np.float64)
    bench = np.array([d.benchmark_nav for d in result.series], dtype=np.float64)
    ppy = cfg.trading_days_per_year

    latest = None
    if result.series:
        last = result.series[-1]
        latest = {"date": last.date, "risk_on": last.risk_on_pct, "risk_off": last.risk_off_pct}

    return Summary(
        strategy=compute_metrics(nav, cfg=cfg),
        benchmark=compute_metrics(bench, cfg=cfg),
        rolling={
            "strategy": [rolling_returns(nav, w, periods_per_year=ppy) for w in cfg.rolling_windows],
            "benchmark": [rolling_returns(bench, w, periods_per_year=ppy) for w in cfg.rolling_windows],
        },
        tenor_cagr={
            "1Y": {"strategy": trailing_cagr(nav, ppy, periods_per_year=ppy), "benchmark": trailing_cagr(bench, ppy, periods_per_year=ppy)},
            "3Y": {"strategy": trailing_cagr(nav, 3 * ppy, periods_per_year=ppy), "benchmark": trailing_cagr(bench, 3 * ppy, periods_per_year=ppy)},
        },
        yearly=yearly_stats(result),
        latest_allocation=latest,
    )
