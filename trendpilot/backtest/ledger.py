"""trendpilot.backtest.ledger

Cash, shares, and the cost of changing your mind.

Rebalancing runs in two phases so buys are funded by the sells of the same
day:
- sell phase: trim every position above its target
- buy phase: top up every position below its target, never spending more
  cash than is on hand

Frictions (commission + slippage) are charged on notional and are a
permanent NAV drag. Moves smaller than the dust threshold are ignored.
"""

from __future__ import annotations

import logging
import math
import warnings
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field

from trendpilot.core.exceptions import UntradeableDayWarning
from trendpilot.core.models import StrategyComponent
from trendpilot.core.types import TradeRecord, TradeSide

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PortfolioState:
    cash: float
    holdings: dict[str, float] = field(default_factory=dict)  # shares; negative = short
    last_price: dict[str, float] = field(default_factory=dict)  # last known close


@dataclass(frozen=True, slots=True)
class RebalanceOutcome:
    trades: list[TradeRecord]
    sell_notional: float
    buy_notional: float
    costs: float
    nav_after: float
    untradeable: list[str]


def basket_weights(
    risk_on: Iterable[StrategyComponent],
    risk_off: Iterable[StrategyComponent],
    risk_on_weight: float,
    *,
    resolve: Callable[[str], str] = lambda ref: ref,
) -> dict[str, float]:
    """Signed fraction of NAV per ticker.

    ``regime weight of the basket * allocation / basket total * direction sign``,
    summed when a ticker appears in both baskets.
    """

    out: dict[str, float] = {}
    for basket, regime_w in ((list(risk_on), risk_on_weight), (list(risk_off), 1.0 - risk_on_weight)):
        total = sum(c.allocation_pct for c in basket)
        if total <= 0:
            continue
        for c in basket:
            t = resolve(c.ticker)
            out[t] = out.get(t, 0.0) + regime_w * (c.allocation_pct / total) * c.direction.sign
    return out


class Ledger:
    """Owns one run's portfolio state. Never shared across runs."""

    def __init__(self, initial_capital: float, *, cost_rate: float, dust_threshold: float = 1.0) -> None:
        if cost_rate < 0 or cost_rate >= 1:
            raise ValueError("cost_rate must be within [0, 1)")
        self.state = PortfolioState(cash=float(initial_capital))
        self.cost_rate = float(cost_rate)
        self.dust = float(dust_threshold)

    @property
    def cash(self) -> float:
        return self.state.cash

    def shares(self, ticker: str) -> float:
        return self.state.holdings.get(ticker, 0.0)

    def mark_to_market(self, closes: Mapping[str, float]) -> float:
        """NAV at today's closes; tickers without a usable close keep their last known price."""

        for t, px in closes.items():
            if px is not None and px > 0 and math.isfinite(px):
                self.state.last_price[t] = float(px)

        nav = self.state.cash
        for t, q in self.state.holdings.items():
            if q == 0:
                continue
            nav += q * self.state.last_price.get(t, 0.0)
        return nav

    def rebalance(
        self,
        date: str,
        nav: float,
        targets: Mapping[str, float],
        prices: Mapping[str, float | None],
    ) -> RebalanceOutcome:
        """Trade toward dollar ``targets`` at execution ``prices``.

        Args:
            date: Execution date, stamped on every trade.
            nav: Marked NAV before trading.
            targets: Signed dollar target per ticker.
            prices: Execution price per ticker; missing or non-positive means untradeable today.
        """

        st = self.state
        tickers = list(dict.fromkeys([*st.holdings, *targets]))
        trades: list[TradeRecord] = []
        untradeable: list[str] = []
        sell_notional = 0.0
        buy_notional = 0.0
        costs = 0.0

        def usable_price(t: str) -> float | None:
            px = prices.get(t)
            if px is None or not math.isfinite(px) or px <= 0:
                return None
            return float(px)

        for t in tickers:
            if usable_price(t) is None and (self.shares(t) != 0 or targets.get(t, 0.0) != 0):
                untradeable.append(t)

        # Sell phase
        for t in tickers:
            px = usable_price(t)
            if px is None:
                continue
            current = self.shares(t) * px
            target = float(targets.get(t, 0.0))
            if current > target + self.dust:
                notional = current - target
                cost = notional * self.cost_rate
                qty = notional / px
                st.holdings[t] = self.shares(t) - qty
                st.cash += notional - cost
                sell_notional += notional
                costs += cost
                trades.append(TradeRecord(date=date, ticker=t, side=TradeSide.SELL, notional=notional, shares=qty, price=px, cost=cost))

        # Buy phase
        for t in tickers:
            px = usable_price(t)
            if px is None:
                continue
            current = self.shares(t) * px
            target = float(targets.get(t, 0.0))
            if target > current + self.dust:
                notional = target - current
                spend = notional * (1.0 + self.cost_rate)
                if spend > st.cash:
                    notional = st.cash / (1.0 + self.cost_rate)
                    spend = st.cash
                if spend <= self.dust:
                    continue
                cost = notional * self.cost_rate
                qty = notional / px
                st.holdings[t] = self.shares(t) + qty
                st.cash = max(0.0, st.cash - spend)
                buy_notional += notional
                costs += cost
                trades.append(TradeRecord(date=date, ticker=t, side=TradeSide.BUY, notional=notional, shares=qty, price=px, cost=cost))

        for t in untradeable:
            logger.warning("ledger_untradeable", extra={"date": date, "ticker": t})
            warnings.warn(UntradeableDayWarning(f"No usable execution price for {t} on {date}; trade skipped"), stacklevel=2)

        return RebalanceOutcome(
            trades=trades,
            sell_notional=sell_notional,
            buy_notional=buy_notional,
            costs=costs,
            nav_after=nav - costs,
            untradeable=untradeable,
        )
