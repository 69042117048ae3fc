"""trendpilot.backtest.signals

Trend indicators over the aligned date axis.

Everything is computed from closes strictly before the as-of date: a signal
for day ``d`` only knows what was known at the open of ``d``.
Missing and non-positive closes are skipped, never treated as zero.
"""

from __future__ import annotations

from bisect import bisect_left
from dataclasses import dataclass

import numpy as np

from trendpilot.backtest.aligner import AlignedHistory
from trendpilot.backtest.rules import IndicatorInputs, Rule


@dataclass(frozen=True, slots=True)
class _Track:
    closes: np.ndarray  # (T,) close per axis date, nan where unusable
    valid_count: np.ndarray  # (T+1,) valid closes within axis[:i]
    valid_values: np.ndarray  # (V,) usable closes in date order
    valid_csum: np.ndarray  # (V+1,) running sum of valid_values


class SignalCalculator:
    def __init__(self, history: AlignedHistory) -> None:
        self.history = history
        self._tracks: dict[str, _Track] = {}

    def _track(self, ticker: str) -> _Track:
        tr = self._tracks.get(ticker)
        if tr is not None:
            return tr

        points = self.history.lookup.get(ticker, {})
        closes = np.full(len(self.history.axis), np.nan, dtype=np.float64)
        for i, d in enumerate(self.history.axis):
            p = points.get(d)
            if p is not None and p.close > 0:
                closes[i] = p.close

        valid = np.isfinite(closes)
        valid_values = closes[valid]
        tr = _Track(
            closes=closes,
            valid_count=np.concatenate(([0], np.cumsum(valid, dtype=np.int64))),
            valid_values=valid_values,
            valid_csum=np.concatenate(([0.0], np.cumsum(valid_values, dtype=np.float64))),
        )
        self._tracks[ticker] = tr
        return tr

    def _cutoff(self, as_of: str) -> int:
        # Number of axis dates strictly before as_of.
        return bisect_left(self.history.axis, as_of)

    def moving_average(self, ticker: str, period: int, as_of: str) -> float | None:
        """Mean of the ``period`` most recent valid closes strictly before ``as_of``."""

        if period <= 0:
            return None
        tr = self._track(ticker)
        k = int(tr.valid_count[self._cutoff(as_of)])
        if k < period:
            return None
        return float((tr.valid_csum[k] - tr.valid_csum[k - period]) / period)

    def momentum(self, ticker: str, period: int, as_of: str) -> float | None:
        """``close[t-1] / close[t-1-period] - 1`` on the date axis; ``None`` if either end is unusable."""

        if period <= 0:
            return None
        tr = self._track(ticker)
        idx = self._cutoff(as_of)
        if idx - 1 - period < 0:
            return None
        now = tr.closes[idx - 1]
        then = tr.closes[idx - 1 - period]
        if not (np.isfinite(now) and np.isfinite(then)):
            return None
        return float(now / then - 1.0)

    def last_close(self, ticker: str, as_of: str) -> float | None:
        """Most recent valid close strictly before ``as_of``."""

        tr = self._track(ticker)
        k = int(tr.valid_count[self._cutoff(as_of)])
        if k == 0:
            return None
        return float(tr.valid_values[k - 1])

    def inputs_for(self, rule: Rule, ticker: str, as_of: str) -> IndicatorInputs:
        return IndicatorInputs(
            price=self.last_close(ticker, as_of),
            moving_averages={p: self.moving_average(ticker, p, as_of) for p in rule.ma_periods},
            momentum={p: self.momentum(ticker, p, as_of) for p in rule.momentum_periods},
        )
