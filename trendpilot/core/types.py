"""trendpilot.core.types

Lightweight dataclasses for hot-path objects.

Pydantic models own IO boundaries; dataclasses keep the daily loop lean.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

COMPOSITE_PREFIX = "STRAT:"


class RebalanceFrequency(StrEnum):
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    BIMONTHLY = "bimonthly"
    QUARTERLY = "quarterly"
    SEMIANNUALLY = "semiannually"
    ANNUALLY = "annually"

    @classmethod
    def parse(cls, value: str | RebalanceFrequency) -> RebalanceFrequency:
        """Accept enum values, names, and the legacy display labels (``Bi-Weekly``, ``2-Month``)."""

        if isinstance(value, cls):
            return value
        key = str(value).strip().lower().replace("-", "").replace("_", "").replace(" ", "")
        key = _FREQUENCY_ALIASES.get(key, key)
        return cls(key)


_FREQUENCY_ALIASES = {
    "2month": "bimonthly",
    "twomonth": "bimonthly",
    "semiannual": "semiannually",
    "annual": "annually",
    "yearly": "annually",
    "fortnightly": "biweekly",
}


class PriceField(StrEnum):
    OPEN = "open"
    HIGH = "high"
    LOW = "low"
    CLOSE = "close"
    AVG = "avg"

    @classmethod
    def parse(cls, value: str | PriceField) -> PriceField:
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        if key == "average":
            key = "avg"
        return cls(key)


class Direction(StrEnum):
    LONG = "long"
    SHORT = "short"

    @property
    def sign(self) -> float:
        return 1.0 if self is Direction.LONG else -1.0


class TradeSide(StrEnum):
    BUY = "BUY"
    SELL = "SELL"


@dataclass(frozen=True, slots=True)
class PricePoint:
    date: str  # ISO YYYY-MM-DD
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    @property
    def usable(self) -> bool:
        return self.close > 0

    def price(self, field: PriceField) -> float:
        """Execution price for ``field``; falls back to close when the field is not positive."""

        if field is PriceField.CLOSE:
            return self.close
        if field is PriceField.AVG:
            high = self.high if self.high > 0 else self.close
            low = self.low if self.low > 0 else self.close
            return (high + low + self.close) / 3.0
        v = float(getattr(self, field.value))
        return v if v > 0 else self.close


@dataclass(frozen=True, slots=True)
class SimDayRecord:
    date: str
    nav: float
    benchmark_nav: float
    risk_on_pct: float
    risk_off_pct: float
    rebalanced: bool


@dataclass(frozen=True, slots=True)
class TradeRecord:
    date: str
    ticker: str
    side: TradeSide
    notional: float
    shares: float
    price: float
    cost: float = 0.0


@dataclass(frozen=True, slots=True)
class RegimeSwitchEvent:
    date: str
    from_weight: float
    to_weight: float


@dataclass(frozen=True, slots=True)
class SimulationResult:
    strategy_id: str
    series: list[SimDayRecord] = field(default_factory=list)
    trades: list[TradeRecord] = field(default_factory=list)
    regime_switches: list[RegimeSwitchEvent] = field(default_factory=list)

    @property
    def start_date(self) -> str | None:
        return self.series[0].date if self.series else None

    @property
    def end_date(self) -> str | None:
        return self.series[-1].date if self.series else None

    def as_price_series(self) -> list[PricePoint]:
        """NAV path as synthetic OHLC bars (open=high=low=close=nav, volume=0)."""

        return [PricePoint(date=d.date, open=d.nav, high=d.nav, low=d.nav, close=d.nav, volume=0.0) for d in self.series]
