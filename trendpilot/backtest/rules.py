"""trendpilot.backtest.rules

Regime rules: indicator readings in, risk-on weight out.

Each rule is a fixed linear combination of boolean conditions whose weights
sum to 1.0. The set is closed; new rules are added here, not plugged in.

Warmup policy: if any indicator a rule needs is missing, the rule returns
``None`` and the caller holds the previous weight.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

from trendpilot.core.exceptions import ConfigError


class RuleId(StrEnum):
    SLOW_TRIPLE = "slow_triple"
    QUICK_TRIPLE = "quick_triple"
    MACRO_VOL_ADAPTIVE = "macro_vol_adaptive"
    MULTI_TIMEFRAME_SENTINEL = "multi_timeframe_sentinel"


class ConditionKind(StrEnum):
    ABOVE_MA = "above_ma"
    MOMENTUM_POSITIVE = "momentum_positive"


@dataclass(frozen=True, slots=True)
class Condition:
    kind: ConditionKind
    period: int
    weight: float

    def describe(self) -> str:
        if self.kind is ConditionKind.ABOVE_MA:
            return f"price > MA{self.period}"
        return f"momentum{self.period} > 0"


@dataclass(frozen=True, slots=True)
class IndicatorInputs:
    """One day's readings for the driver ticker. ``None`` means not yet computable."""

    price: float | None
    moving_averages: dict[int, float | None] = field(default_factory=dict)
    momentum: dict[int, float | None] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class Rule:
    id: RuleId
    name: str
    description: str
    conditions: tuple[Condition, ...]

    @property
    def ma_periods(self) -> tuple[int, ...]:
        return tuple(c.period for c in self.conditions if c.kind is ConditionKind.ABOVE_MA)

    @property
    def momentum_periods(self) -> tuple[int, ...]:
        return tuple(c.period for c in self.conditions if c.kind is ConditionKind.MOMENTUM_POSITIVE)

    def evaluate(self, inputs: IndicatorInputs) -> float | None:
        weight = 0.0
        for c in self.conditions:
            if c.kind is ConditionKind.ABOVE_MA:
                ma = inputs.moving_averages.get(c.period)
                if ma is None or inputs.price is None:
                    return None
                if inputs.price > ma:
                    weight += c.weight
            else:
                mom = inputs.momentum.get(c.period)
                if mom is None:
                    return None
                if mom > 0:
                    weight += c.weight
        return min(1.0, max(0.0, weight))


def _ma(period: int, weight: float) -> Condition:
    return Condition(kind=ConditionKind.ABOVE_MA, period=period, weight=weight)


def _mom(period: int, weight: float) -> Condition:
    return Condition(kind=ConditionKind.MOMENTUM_POSITIVE, period=period, weight=weight)


RULES: dict[RuleId, Rule] = {
    RuleId.SLOW_TRIPLE: Rule(
        id=RuleId.SLOW_TRIPLE,
        name="TripleTrend_Slow",
        description="Risk-on asset vs its 50d, 75d and 100d moving averages; the 50d carries half the weight.",
        conditions=(_ma(50, 0.50), _ma(75, 0.25), _ma(100, 0.25)),
    ),
    RuleId.QUICK_TRIPLE: Rule(
        id=RuleId.QUICK_TRIPLE,
        name="TripleTrend_Quick",
        description="Risk-on asset vs its 25d, 50d and 100d moving averages; the 50d carries half the weight.",
        conditions=(_ma(25, 0.25), _ma(50, 0.50), _ma(100, 0.25)),
    ),
    RuleId.MACRO_VOL_ADAPTIVE: Rule(
        id=RuleId.MACRO_VOL_ADAPTIVE,
        name="Macro_200_50",
        description="Long-horizon filter: 200d moving average (60%) confirmed by the 50d (40%).",
        conditions=(_ma(200, 0.60), _ma(50, 0.40)),
    ),
    RuleId.MULTI_TIMEFRAME_SENTINEL: Rule(
        id=RuleId.MULTI_TIMEFRAME_SENTINEL,
        name="MultiTimeframe_Sentinel",
        description="200d moving average (40%) plus positive 126d (30%) and 63d (30%) momentum.",
        conditions=(_ma(200, 0.40), _mom(126, 0.30), _mom(63, 0.30)),
    ),
}

# Rule ids used by stored strategies before the enum existed.
LEGACY_RULE_IDS: dict[str, RuleId] = {
    "rule_1": RuleId.SLOW_TRIPLE,
    "rule_2": RuleId.QUICK_TRIPLE,
    "rule_3": RuleId.MACRO_VOL_ADAPTIVE,
    "rule_4": RuleId.MULTI_TIMEFRAME_SENTINEL,
}


def resolve_rule_id(value: str | RuleId) -> RuleId:
    if isinstance(value, RuleId):
        return value
    key = str(value).strip().lower()
    if key in LEGACY_RULE_IDS:
        return LEGACY_RULE_IDS[key]
    key = key.replace("-", "_").replace(" ", "_")
    try:
        return RuleId(key)
    except ValueError as e:
        raise ConfigError(f"Unknown rule: {value}") from e


def resolve_rule(value: str | RuleId) -> Rule:
    return RULES[resolve_rule_id(value)]


def list_rules() -> list[Rule]:
    return list(RULES.values())
