"""trendpilot.backtest.scheduler

When does a rebalance fire?

Boundary crossings are measured against the previous *simulated* day, so a
long market closure can swallow a weekly boundary (e.g. a Friday holiday
followed by a Tuesday restart still counts; a Thursday-to-Thursday gap does
not). That approximation is kept on purpose.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from trendpilot.core.time import month_ordinal, parse_date, week_start
from trendpilot.core.types import RebalanceFrequency


def _new_week(curr: date, prev: date) -> bool:
    return curr.isoweekday() < prev.isoweekday()


def is_rebalance_due(
    date: str,
    day_index: int,
    frequency: RebalanceFrequency,
    last_rebalance: str | None,
    previous_date: str | None,
) -> bool:
    """Return True when a rebalance decision should be taken on ``date``.

    Args:
        date: Current simulated day.
        day_index: Position of ``date`` in the simulation window; day 0 is always due.
        frequency: Rebalance policy.
        last_rebalance: Date of the last acted-upon rebalance decision, if any.
        previous_date: Previous simulated day.
    """

    if day_index == 0 or previous_date is None:
        return True
    if frequency is RebalanceFrequency.DAILY:
        return True

    curr = parse_date(date)
    prev = parse_date(previous_date)

    if frequency is RebalanceFrequency.WEEKLY:
        return _new_week(curr, prev)
    if frequency is RebalanceFrequency.BIWEEKLY:
        if not _new_week(curr, prev):
            return False
        if last_rebalance is None:
            return True
        weeks = (week_start(curr) - week_start(parse_date(last_rebalance))).days // 7
        return weeks >= 2
    if frequency is RebalanceFrequency.MONTHLY:
        return (curr.year, curr.month) != (prev.year, prev.month)
    if frequency is RebalanceFrequency.BIMONTHLY:
        if (curr.year, curr.month) == (prev.year, prev.month):
            return False
        if last_rebalance is None:
            return True
        return month_ordinal(curr) - month_ordinal(parse_date(last_rebalance)) >= 2
    if frequency is RebalanceFrequency.QUARTERLY:
        return (curr.year, (curr.month - 1) // 3) != (prev.year, (prev.month - 1) // 3)
    if frequency is RebalanceFrequency.SEMIANNUALLY:
        return (curr.year, (curr.month - 1) // 6) != (prev.year, (prev.month - 1) // 6)
    if frequency is RebalanceFrequency.ANNUALLY:
        return curr.year != prev.year
    return False


@dataclass(slots=True)
class RebalanceScheduler:
    """Per-run scheduling state: previous simulated day and last rebalance."""

    frequency: RebalanceFrequency
    previous_date: str | None = None
    last_rebalance: str | None = None

    def is_due(self, date: str, day_index: int) -> bool:
        due = is_rebalance_due(date, day_index, self.frequency, self.last_rebalance, self.previous_date)
        self.previous_date = date
        return due

    def mark_rebalanced(self, date: str) -> None:
        self.last_rebalance = date
