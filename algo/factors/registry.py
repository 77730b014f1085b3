"""指标因子注册表：名称 -> 因子类。

图表层需要一次算出全部指标列；列表由 `IndicatorConfig` 派生，
每一项形如 `{"type": "ma", "window": 20}`，参数也可以放在 `params` 下。
"""

from __future__ import annotations

import inspect
from typing import Any, Iterable, Mapping

import pandas as pd

from algo.factors.base import Factor
from algo.factors.ma import MAFactor
from algo.factors.macd import MACDFactor
from algo.factors.range_position import RangePositionFactor
from algo.factors.rsi import RSIFactor
from algo.factors.trailing_stop import TrailingStopFactor
from shared.config.schema import IndicatorConfig

_FACTORS: dict[str, type] = {}


def register_factor(name: str, cls: type) -> None:
    _FACTORS[name] = cls


def get_factor_cls(name: str) -> type:
    try:
        return _FACTORS[name]
    except KeyError:
        raise ValueError(f"Unknown factor: {name}") from None


def _init_params(cls: type, params: Mapping[str, Any]) -> dict[str, Any]:
    """只保留构造函数认识的参数。"""
    accepted = set(inspect.signature(cls).parameters) - {"name", "params"}
    return {k: v for k, v in params.items() if k in accepted}


def _split_spec(spec: Mapping[str, Any]) -> tuple[str, dict[str, Any]]:
    name = str(spec.get("type") or spec.get("name") or "")
    if not name:
        raise ValueError("factor spec missing type")
    nested = spec.get("params")
    if nested is not None and not isinstance(nested, Mapping):
        raise ValueError("factor params must be a mapping")
    params = {k: v for k, v in spec.items() if k not in {"type", "name", "params"}}
    # params 下的同名键优先
    params.update(nested or {})
    return name, params


def build_factors(specs: Iterable[Mapping[str, Any]] | None) -> list[Factor]:
    factors: list[Factor] = []
    for spec in specs or []:
        if not isinstance(spec, Mapping):
            raise ValueError("factor spec must be a mapping")
        name, params = _split_spec(spec)
        cls = get_factor_cls(name)
        try:
            factors.append(cls(**_init_params(cls, params)))
        except TypeError as exc:
            raise ValueError(f"Invalid params for factor '{name}': {params}") from exc
    return factors


def factor_specs(cfg: IndicatorConfig) -> list[dict[str, Any]]:
    stop = cfg.trailing_stop
    return [
        {"type": "ma", "window": 5},
        {"type": "ma", "window": cfg.ma_period},
        {"type": "rsi", "period": cfg.rsi_period},
        {"type": "macd", "short": cfg.macd.short, "long": cfg.macd.long, "mid": cfg.macd.mid},
        {"type": "trailing_stop", "period": stop.period, "multiplier": stop.multiplier},
        {"type": "range_position", "period": cfg.range_period},
    ]


def apply_factors(df: pd.DataFrame, factors: Iterable[Factor]) -> pd.DataFrame:
    for factor in factors:
        df = factor.compute(df)
    return df


register_factor("ma", MAFactor)
register_factor("rsi", RSIFactor)
register_factor("macd", MACDFactor)
register_factor("trailing_stop", TrailingStopFactor)
register_factor("range_position", RangePositionFactor)
