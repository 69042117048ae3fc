"""trendpilot.core.config

Two config surfaces only:
1) `config/default.yaml` + `config/presets/*.yaml`
2) Environment variables (`TRENDPILOT_*`, nested with `__`); these win over YAML

Strategy definitions live in their own file; see `trendpilot.backtest.io`.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from trendpilot.core.exceptions import ConfigError

_ENV_PREFIX = "TRENDPILOT_"


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Config file is not valid YAML: {path}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config file must contain a mapping: {path}")
    return data


def _deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    result: dict[str, Any] = dict(base)
    for k, v in overlay.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


class SimulationConfig(BaseModel):
    """Engine constants. Passed explicitly into every run."""

    dust_threshold_usd: float = 1.0
    regime_epsilon: float = 0.01
    min_window_dates: int = 5
    initial_risk_on_weight: float = 1.0

    @field_validator("initial_risk_on_weight")
    @classmethod
    def weight_in_unit_interval(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("initial_risk_on_weight must be within [0, 1]")
        return v

    @field_validator("min_window_dates")
    @classmethod
    def min_window_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("min_window_dates must be >= 1")
        return v


class StrategyDefaults(BaseModel):
    """Fallbacks for fields a strategy file leaves out."""

    benchmark: str = "SPY"
    rebalance_frequency: str = "weekly"
    price_field: str = "avg"
    initial_capital: float = 10000.0
    transaction_cost_pct: float = 0.1
    slippage_pct: float = 0.1
    execution_delay_days: int = 1
    rule: str = "quick_triple"
    only_trade_on_signal_change: bool = False
    backtest_duration: str = "Max"


class MetricsConfig(BaseModel):
    trading_days_per_year: int = 252
    risk_free_rate: float = 0.05
    max_daily_return: float = 3.0
    min_daily_return: float = -0.9
    rolling_windows: list[int] = [63, 252, 756]


class DataConfig(BaseModel):
    data_dir: Path = Path("data")
    strategies_file: Path = Path("config/strategies.yaml")


class LoggingConfig(BaseModel):
    level: str = "INFO"
    json_output: bool = False


class Config(BaseSettings):
    """Root configuration. Single source of truth."""

    config_dir: Path = Path("config")

    preset: Literal["frictionless", "retail", "institutional", "custom"] = "retail"

    simulation: SimulationConfig = Field(default_factory=SimulationConfig)
    defaults: StrategyDefaults = Field(default_factory=StrategyDefaults)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    data: DataConfig = Field(default_factory=DataConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"env_prefix": _ENV_PREFIX, "env_nested_delimiter": "__"}

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Environment beats YAML; YAML arrives as init kwargs.
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    @classmethod
    def from_yaml(cls, path: Path) -> Config:
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")

        raw = _read_yaml(path)

        preset_name = os.environ.get(f"{_ENV_PREFIX}PRESET") or raw.get("preset", "retail")
        preset_path = path.parent / "presets" / f"{preset_name}.yaml"
        if preset_path.exists():
            raw = _deep_merge(_read_yaml(preset_path), raw)

        raw.setdefault("config_dir", path.parent)
        try:
            return cls(**raw)
        except ValidationError as e:
            raise ConfigError(f"Invalid config {path}: {e}") from e

    @classmethod
    def from_repo_defaults(cls, repo_root: Path | None = None) -> Config:
        root = repo_root or Path.cwd()
        return cls.from_yaml(root / "config" / "default.yaml")

    @classmethod
    def load(cls, repo_root: Path | None = None) -> Config:
        """Repo defaults when present, built-in defaults otherwise."""

        root = repo_root or Path.cwd()
        path = root / "config" / "default.yaml"
        return cls.from_yaml(path) if path.exists() else cls()
