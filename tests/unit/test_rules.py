from __future__ import annotations

import pytest

from trendpilot.backtest.rules import (
    RULES,
    IndicatorInputs,
    RuleId,
    list_rules,
    resolve_rule,
    resolve_rule_id,
)
from trendpilot.core.exceptions import ConfigError


@pytest.mark.parametrize("rule_id", list(RuleId))
def test_rule_weights_sum_to_one(rule_id: RuleId) -> None:
    rule = RULES[rule_id]
    assert sum(c.weight for c in rule.conditions) == pytest.approx(1.0)


@pytest.mark.parametrize("rule_id", list(RuleId))
def test_rule_is_fully_on_above_every_indicator(rule_id: RuleId) -> None:
    rule = RULES[rule_id]
    inputs = IndicatorInputs(
        price=110.0,
        moving_averages={p: 100.0 for p in rule.ma_periods},
        momentum={p: 0.05 for p in rule.momentum_periods},
    )
    assert rule.evaluate(inputs) == pytest.approx(1.0)

    inputs = IndicatorInputs(
        price=90.0,
        moving_averages={p: 100.0 for p in rule.ma_periods},
        momentum={p: -0.05 for p in rule.momentum_periods},
    )
    assert rule.evaluate(inputs) == 0.0


def test_quick_triple_partial_weights() -> None:
    rule = resolve_rule(RuleId.QUICK_TRIPLE)
    inputs = IndicatorInputs(price=10.0, moving_averages={25: 9.0, 50: 11.0, 100: 9.0})
    assert rule.evaluate(inputs) == pytest.approx(0.5)

    inputs = IndicatorInputs(price=10.0, moving_averages={25: 11.0, 50: 9.0, 100: 11.0})
    assert rule.evaluate(inputs) == pytest.approx(0.5)


def test_slow_triple_partial_weights() -> None:
    rule = resolve_rule(RuleId.SLOW_TRIPLE)
    inputs = IndicatorInputs(price=10.0, moving_averages={50: 9.0, 75: 11.0, 100: 11.0})
    assert rule.evaluate(inputs) == pytest.approx(0.5)


def test_sentinel_mixes_trend_and_momentum() -> None:
    rule = resolve_rule(RuleId.MULTI_TIMEFRAME_SENTINEL)
    inputs = IndicatorInputs(price=10.0, moving_averages={200: 12.0}, momentum={126: 0.1, 63: -0.02})
    assert rule.evaluate(inputs) == pytest.approx(0.3)


def test_price_equal_to_average_is_not_above() -> None:
    rule = resolve_rule(RuleId.MACRO_VOL_ADAPTIVE)
    inputs = IndicatorInputs(price=10.0, moving_averages={200: 10.0, 50: 9.0})
    assert rule.evaluate(inputs) == pytest.approx(0.4)


def test_missing_indicator_holds_instead_of_partial_signal() -> None:
    rule = resolve_rule(RuleId.SLOW_TRIPLE)
    inputs = IndicatorInputs(price=10.0, moving_averages={50: 9.0, 75: 9.0, 100: None})
    assert rule.evaluate(inputs) is None

    inputs = IndicatorInputs(price=None, moving_averages={50: 9.0, 75: 9.0, 100: 9.0})
    assert rule.evaluate(inputs) is None

    sentinel = resolve_rule(RuleId.MULTI_TIMEFRAME_SENTINEL)
    inputs = IndicatorInputs(price=10.0, moving_averages={200: 9.0}, momentum={126: 0.1})
    assert sentinel.evaluate(inputs) is None


def test_resolve_accepts_names_and_legacy_ids() -> None:
    assert resolve_rule_id("rule_1") is RuleId.SLOW_TRIPLE
    assert resolve_rule_id("rule_2") is RuleId.QUICK_TRIPLE
    assert resolve_rule_id("RULE_3") is RuleId.MACRO_VOL_ADAPTIVE
    assert resolve_rule_id("multi-timeframe-sentinel") is RuleId.MULTI_TIMEFRAME_SENTINEL
    assert resolve_rule_id(RuleId.QUICK_TRIPLE) is RuleId.QUICK_TRIPLE


def test_resolve_unknown_rule_is_config_error() -> None:
    with pytest.raises(ConfigError):
        resolve_rule("rule_99")


def test_list_rules_covers_every_variant() -> None:
    assert {r.id for r in list_rules()} == set(RuleId)
