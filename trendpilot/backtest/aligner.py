"""trendpilot.backtest.aligner

Date alignment across heterogeneous histories.

The simulation can only start once every required ticker has printed a bar.
Gaps after that point stay in the data; carry-forward is handled downstream.
"""

from __future__ import annotations

import logging
from bisect import bisect_left, bisect_right
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass

from trendpilot.core.exceptions import InsufficientRangeError, MissingDataError
from trendpilot.core.types import PricePoint

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AlignedHistory:
    axis: tuple[str, ...]  # every known date, ascending
    window: tuple[str, ...]  # dates to simulate, a contiguous slice of axis
    window_start: int  # index of window[0] in axis
    feasible_start: str
    lookup: dict[str, dict[str, PricePoint]]

    def point(self, ticker: str, date: str) -> PricePoint | None:
        return self.lookup.get(ticker, {}).get(date)

    def index_of(self, date: str) -> int:
        i = bisect_left(self.axis, date)
        if i >= len(self.axis) or self.axis[i] != date:
            raise KeyError(date)
        return i


def build_lookup(histories: Mapping[str, Sequence[PricePoint]], required: Iterable[str]) -> dict[str, dict[str, PricePoint]]:
    lookup: dict[str, dict[str, PricePoint]] = {}
    for ticker in required:
        points = histories.get(ticker)
        if not points:
            raise MissingDataError(ticker)
        lookup[ticker] = {p.date: p for p in points}
    return lookup


def align_histories(
    histories: Mapping[str, Sequence[PricePoint]],
    *,
    required: Iterable[str],
    start_date: str | None = None,
    end_date: str | None = None,
    min_dates: int = 5,
) -> AlignedHistory:
    """Merge per-ticker series onto one date axis and pick the simulation window.

    Raises:
        MissingDataError: a required ticker has no points at all.
        InsufficientRangeError: fewer than ``min_dates`` dates survive the clamping.
    """

    tickers = list(dict.fromkeys(required))
    lookup = build_lookup(histories, tickers)

    dates: set[str] = set()
    for points in lookup.values():
        dates.update(points)
    axis = tuple(sorted(dates))

    feasible = next((i for i, d in enumerate(axis) if all(d in lookup[t] for t in tickers)), None)
    if feasible is None:
        raise InsufficientRangeError(f"No common trading date across {', '.join(tickers)}")

    s_idx = bisect_left(axis, start_date) if start_date else feasible
    s_idx = max(s_idx, feasible)

    if end_date:
        e_idx = bisect_right(axis, end_date) - 1
    else:
        e_idx = len(axis) - 1

    window = axis[s_idx : e_idx + 1]
    if len(window) < min_dates:
        raise InsufficientRangeError(
            f"Simulation range is too narrow for analysis: {len(window)} dates (need {min_dates})"
        )

    logger.debug(
        "history_aligned",
        extra={"tickers": tickers, "feasible_start": axis[feasible], "start": window[0], "end": window[-1], "dates": len(window)},
    )
    return AlignedHistory(
        axis=axis,
        window=window,
        window_start=s_idx,
        feasible_start=axis[feasible],
        lookup=lookup,
    )
