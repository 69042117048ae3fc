"""trendpilot.core.models

Strategy definitions as they cross the IO boundary.

Everything here is validated once, at load time. The daily loop never
re-parses strings.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from trendpilot.backtest.rules import RuleId, resolve_rule_id
from trendpilot.core.exceptions import ConfigError
from trendpilot.core.time import DURATION_DAYS
from trendpilot.core.types import COMPOSITE_PREFIX, Direction, PriceField, RebalanceFrequency


class StrategyComponent(BaseModel):
    model_config = ConfigDict(frozen=True)

    ticker: str
    allocation_pct: float = 100.0
    direction: Direction = Direction.LONG

    @field_validator("ticker")
    @classmethod
    def ticker_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("component ticker must not be blank")
        return v

    @field_validator("allocation_pct")
    @classmethod
    def allocation_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("allocation_pct must be >= 0")
        return v

    @field_validator("direction", mode="before")
    @classmethod
    def direction_case_insensitive(cls, v):
        return v.lower() if isinstance(v, str) else v

    @property
    def strategy_ref(self) -> str | None:
        """Referenced strategy id for composite components, else ``None``."""

        if self.ticker.startswith(COMPOSITE_PREFIX):
            return self.ticker[len(COMPOSITE_PREFIX) :]
        return None


class StrategyConfig(BaseModel):
    """A regime-switching strategy. Immutable for the duration of a run."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    description: str = ""

    risk_on: list[StrategyComponent]
    risk_off: list[StrategyComponent] = Field(default_factory=list)
    benchmark: str = "SPY"

    rebalance_frequency: RebalanceFrequency = RebalanceFrequency.WEEKLY
    price_field: PriceField = PriceField.AVG
    initial_capital: float = 10000.0
    transaction_cost_pct: float = 0.1
    slippage_pct: float = 0.1
    execution_delay_days: int = 0
    rule: RuleId = RuleId.QUICK_TRIPLE
    only_trade_on_signal_change: bool = False
    backtest_duration: str = "Max"

    @field_validator("rebalance_frequency", mode="before")
    @classmethod
    def parse_frequency(cls, v):
        return RebalanceFrequency.parse(v)

    @field_validator("price_field", mode="before")
    @classmethod
    def parse_price_field(cls, v):
        return PriceField.parse(v)

    @field_validator("rule", mode="before")
    @classmethod
    def parse_rule(cls, v):
        try:
            return resolve_rule_id(v)
        except ConfigError as e:
            raise ValueError(str(e)) from e

    @field_validator("initial_capital")
    @classmethod
    def capital_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("initial_capital must be > 0")
        return v

    @field_validator("transaction_cost_pct", "slippage_pct")
    @classmethod
    def friction_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("costs must be >= 0")
        return v

    @field_validator("execution_delay_days")
    @classmethod
    def delay_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("execution_delay_days must be >= 0")
        return v

    @field_validator("backtest_duration")
    @classmethod
    def known_duration(cls, v: str) -> str:
        if v.strip().upper() not in DURATION_DAYS:
            raise ValueError(f"backtest_duration must be one of {sorted(DURATION_DAYS)}")
        return v.strip()

    @model_validator(mode="after")
    def baskets_are_tradeable(self) -> StrategyConfig:
        if not self.risk_on:
            raise ValueError("risk_on needs at least one component; the first one drives the regime signal")
        if self.transaction_cost_pct + self.slippage_pct >= 100.0:
            raise ValueError("transaction_cost_pct + slippage_pct must be < 100")
        return self

    @property
    def cost_rate(self) -> float:
        return (self.transaction_cost_pct + self.slippage_pct) / 100.0

    @property
    def components(self) -> list[StrategyComponent]:
        return [*self.risk_on, *self.risk_off]

    @property
    def strategy_refs(self) -> list[str]:
        return [c.strategy_ref for c in self.components if c.strategy_ref is not None]
