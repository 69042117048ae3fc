"""trendpilot.backtest.simulator

Regime-switching portfolio simulator.

One run is a strict daily fold:
- mark to market (carry forward missing closes)
- benchmark buy-and-hold NAV
- regime weight from the first risk-on component (the only signal driver)
- rebalance decision, optionally deferred by the execution delay
- two-phase trade execution in the ledger

Composite strategies reference other strategies as ``STRAT:<id>``. The
referenced strategy is simulated first, over its full history, and its NAV
becomes a synthetic price series. Cycles of any depth are rejected before
any simulation math runs.

The only awaits are the market-data loads. Everything after is synchronous.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import math
from collections.abc import Mapping, Sequence
from typing import Protocol, runtime_checkable

from trendpilot.backtest.aligner import AlignedHistory, align_histories
from trendpilot.backtest.ledger import Ledger, basket_weights
from trendpilot.backtest.rules import resolve_rule
from trendpilot.backtest.scheduler import RebalanceScheduler
from trendpilot.backtest.signals import SignalCalculator
from trendpilot.core.config import SimulationConfig
from trendpilot.core.exceptions import CircularDependencyError, MissingDataError
from trendpilot.core.models import StrategyConfig
from trendpilot.core.time import duration_start
from trendpilot.core.types import (
    COMPOSITE_PREFIX,
    PricePoint,
    RegimeSwitchEvent,
    SimDayRecord,
    SimulationResult,
    TradeRecord,
)

logger = logging.getLogger(__name__)


@runtime_checkable
class MarketDataSource(Protocol):
    """Read side of the market-data store. May be sync or async."""

    def get_market_data(self, ticker: str) -> Sequence[PricePoint] | None: ...


SeriesCache = dict[str, list[PricePoint]]


class Simulator:
    """Runs strategies against an injected market-data source.

    Args:
        source: Provides ``get_market_data(ticker)``.
        strategies: Strategy book used to resolve ``STRAT:<id>`` references.
        symbols: Optional symbol-id -> ticker mapping; unknown references pass through.
        settings: Engine constants.
    """

    def __init__(
        self,
        source: MarketDataSource,
        *,
        strategies: Mapping[str, StrategyConfig] | None = None,
        symbols: Mapping[str, str] | None = None,
        settings: SimulationConfig | None = None,
    ) -> None:
        self.source = source
        self.strategies = dict(strategies or {})
        self.symbols = dict(symbols or {})
        self.settings = settings or SimulationConfig()

    def ticker(self, ref: str) -> str:
        if ref.startswith(COMPOSITE_PREFIX):
            return ref
        return self.symbols.get(ref, ref)

    def run(self, strategy: StrategyConfig, *, start_date: str | None = None, end_date: str | None = None) -> SimulationResult:
        """Blocking entry point; starts its own event loop.

        Raises ``RuntimeError`` when called from a running loop. Async callers
        use ``run_async``.
        """

        return asyncio.run(self.run_async(strategy, start_date=start_date, end_date=end_date))

    async def run_async(
        self,
        strategy: StrategyConfig,
        *,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> SimulationResult:
        cache: SeriesCache = {}
        return await self._run(strategy, start_date=start_date, end_date=end_date, path=(), cache=cache, full_history=False)

    def check_references(self, strategy: StrategyConfig, path: tuple[str, ...] = ()) -> None:
        """Walk the composite graph from ``strategy``; raise on cycles or unknown ids."""

        chain = (*path, strategy.id)
        for ref in _references(strategy):
            if ref in chain:
                raise CircularDependencyError([*chain, ref])
            sub = self.strategies.get(ref)
            if sub is None:
                raise MissingDataError(COMPOSITE_PREFIX + ref, f"Unknown strategy referenced: {ref}")
            self.check_references(sub, chain)

    async def _run(
        self,
        strategy: StrategyConfig,
        *,
        start_date: str | None,
        end_date: str | None,
        path: tuple[str, ...],
        cache: SeriesCache,
        full_history: bool,
    ) -> SimulationResult:
        self.check_references(strategy, path)
        chain = (*path, strategy.id)

        tickers = list(dict.fromkeys([self.ticker(strategy.benchmark), *(self.ticker(c.ticker) for c in strategy.components)]))

        for t in tickers:
            if t.startswith(COMPOSITE_PREFIX) and t not in cache:
                sub = self.strategies[t[len(COMPOSITE_PREFIX) :]]
                sub_result = await self._run(sub, start_date=None, end_date=None, path=chain, cache=cache, full_history=True)
                cache[t] = sub_result.as_price_series()
                logger.info("composite_materialized", extra={"ticker": t, "bars": len(cache[t])})

        plain = [t for t in tickers if not t.startswith(COMPOSITE_PREFIX)]
        loaded = await asyncio.gather(*(self._load(t) for t in plain))
        histories: dict[str, list[PricePoint]] = dict(zip(plain, loaded, strict=True))
        for t in tickers:
            if t.startswith(COMPOSITE_PREFIX):
                histories[t] = [p for p in cache[t] if p.usable]
                if not histories[t]:
                    raise MissingDataError(t)

        if start_date is None and not full_history:
            anchor = max(points[-1].date for points in histories.values())
            start_date = duration_start(anchor, strategy.backtest_duration)

        aligned = align_histories(
            histories,
            required=tickers,
            start_date=start_date,
            end_date=end_date,
            min_dates=self.settings.min_window_dates,
        )
        return self._simulate(strategy, aligned, tickers)

    async def _load(self, ticker: str) -> list[PricePoint]:
        data = self.source.get_market_data(ticker)
        if inspect.isawaitable(data):
            data = await data
        points = sorted((p for p in (data or []) if p.usable), key=lambda p: p.date)
        if not points:
            raise MissingDataError(ticker)
        return points

    def _simulate(self, strategy: StrategyConfig, aligned: AlignedHistory, tickers: list[str]) -> SimulationResult:
        cfg = self.settings
        rule = resolve_rule(strategy.rule)
        signals = SignalCalculator(aligned)
        ledger = Ledger(strategy.initial_capital, cost_rate=strategy.cost_rate, dust_threshold=cfg.dust_threshold_usd)
        scheduler = RebalanceScheduler(strategy.rebalance_frequency)

        capital = strategy.initial_capital
        driver = self.ticker(strategy.risk_on[0].ticker)
        benchmark = self.ticker(strategy.benchmark)
        bm_start = _close_on_or_before(aligned, benchmark, aligned.window[0])
        bm_last = bm_start

        series: list[SimDayRecord] = []
        trades: list[TradeRecord] = []
        switches: list[RegimeSwitchEvent] = []

        weight = cfg.initial_risk_on_weight
        prev_weight: float | None = None
        acted_weight: float | None = None
        pending_day: int | None = None
        pending_weights: dict[str, float] = {}
        last_nav = capital

        logger.info(
            "simulation_started",
            extra={"strategy": strategy.id, "start": aligned.window[0], "end": aligned.window[-1], "rule": rule.id.value},
        )

        for i, date in enumerate(aligned.window):
            points = {t: p for t in tickers if (p := aligned.point(t, date)) is not None}

            nav = ledger.mark_to_market({t: p.close for t, p in points.items()})
            if not math.isfinite(nav):
                nav = last_nav

            if benchmark in points:
                bm_last = points[benchmark].close
            bm_nav = capital * (bm_last / bm_start) if bm_start else capital

            computed = rule.evaluate(signals.inputs_for(rule, driver, date))
            if computed is not None:
                weight = computed
            if prev_weight is not None and abs(weight - prev_weight) > cfg.regime_epsilon:
                switches.append(RegimeSwitchEvent(date=date, from_weight=prev_weight, to_weight=weight))
            prev_weight = weight

            if scheduler.is_due(date, i):
                unchanged = acted_weight is not None and abs(weight - acted_weight) <= cfg.regime_epsilon
                if not (strategy.only_trade_on_signal_change and unchanged):
                    pending_weights = basket_weights(strategy.risk_on, strategy.risk_off, weight, resolve=self.ticker)
                    acted_weight = weight
                    scheduler.mark_rebalanced(date)
                    if pending_day is None:
                        pending_day = i + strategy.execution_delay_days

            rebalanced = False
            if pending_day is not None and i >= pending_day:
                prices = {t: p.price(strategy.price_field) for t, p in points.items()}
                targets = {t: nav * w for t, w in pending_weights.items()}
                outcome = ledger.rebalance(date, nav, targets, prices)
                trades.extend(outcome.trades)
                nav = outcome.nav_after
                rebalanced = True
                pending_day = None

            last_nav = nav
            risk_on_pct = round(weight * 100.0, 2)
            series.append(
                SimDayRecord(
                    date=date,
                    nav=nav,
                    benchmark_nav=bm_nav,
                    risk_on_pct=risk_on_pct,
                    risk_off_pct=round(100.0 - risk_on_pct, 2),
                    rebalanced=rebalanced,
                )
            )

        logger.info(
            "simulation_finished",
            extra={"strategy": strategy.id, "days": len(series), "trades": len(trades), "switches": len(switches), "nav": last_nav},
        )
        return SimulationResult(strategy_id=strategy.id, series=series, trades=trades, regime_switches=switches)


def _references(strategy: StrategyConfig) -> list[str]:
    refs = list(strategy.strategy_refs)
    if strategy.benchmark.startswith(COMPOSITE_PREFIX):
        refs.append(strategy.benchmark[len(COMPOSITE_PREFIX) :])
    return list(dict.fromkeys(refs))


def _close_on_or_before(aligned: AlignedHistory, ticker: str, date: str) -> float | None:
    points = aligned.lookup.get(ticker, {})
    for d in reversed(aligned.axis[: aligned.index_of(date) + 1]):
        p = points.get(d)
        if p is not None and p.usable:
            return p.close
    return None


def run_simulation(
    strategy: StrategyConfig,
    source: MarketDataSource,
    *,
    strategies: Mapping[str, StrategyConfig] | None = None,
    symbols: Mapping[str, str] | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    settings: SimulationConfig | None = None,
) -> SimulationResult:
    sim = Simulator(source, strategies=strategies, symbols=symbols, settings=settings)
    return sim.run(strategy, start_date=start_date, end_date=end_date)
